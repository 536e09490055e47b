"""
Sigma Business Automation
AI module — generation infrastructure.

Submodules:
    - gateway: Generation Gateway (provider routing, retry, caching)
    - model_selector: capability / priority model registry
    - retry: RetryPolicy (attempts, linear backoff, connectivity abort)
    - cache: TTL lookaside for structured results
    - prompts: task-type system prompts and request builders
    - assistants.business_planner: plan / marketing / names / custom
"""
