"""
Sigma Business Automation
Blueprint registry.

    modules_bp     /api/v1/modules   module lifecycle, catalog, dependency gate
    context_bp     /api/v1/context   context snapshot refresh / read
    generation_bp  /api/v1/generate  business planner over the generation gateway
"""
