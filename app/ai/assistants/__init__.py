"""
Sigma Business Automation
AI Assistants package.

Assistants:
    - business_planner: business plan, marketing strategy, business names, custom prompts
"""

from app.ai.assistants.business_planner import BusinessPlanner

__all__ = ["BusinessPlanner"]
