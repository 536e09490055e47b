"""
Sigma Business Automation
System prompts and request builders for the business planner.

Each builder returns the user prompt only; the system prompt is chosen by
task type in the gateway via ``system_prompt_for``.
"""

import json

BASE_SYSTEM_PROMPT = """You are SIGMA, an AI business automation assistant. You are independent, \
results-driven and focused on maximizing efficiency and success.

Your core principles:
- Provide actionable, practical solutions
- Focus on measurable business outcomes
- Maintain a professional yet confident tone
- Prioritize speed and efficiency
- Be direct and avoid unnecessary fluff
- Always consider cost-effectiveness and ROI"""

_TASK_FOCUS = {
    "business-planning": """You specialize in creating comprehensive business plans that are:
- Market-validated and data-driven
- Financially realistic and detailed
- Implementation-focused with clear milestones
- Optimized for rapid execution and scaling""",
    "legal-drafting": """You specialize in legal document creation with:
- Precise legal language and terminology
- State-specific compliance requirements
- Risk mitigation strategies
- Clear, actionable clauses and provisions""",
    "branding": """You specialize in brand development with:
- Market positioning and differentiation
- Visual identity recommendations
- Brand voice and messaging strategies
- Competitive analysis and positioning""",
    "marketing": """You specialize in marketing automation with:
- Data-driven campaign strategies
- Multi-channel optimization
- Performance tracking and analytics
- ROI-focused budget allocation""",
}


def system_prompt_for(task_type: str | None) -> str:
    focus = _TASK_FOCUS.get(task_type or "")
    return f"{BASE_SYSTEM_PROMPT}\n\n{focus}" if focus else BASE_SYSTEM_PROMPT


BUSINESS_PLAN_SHAPE = {
    "executive_summary": "Brief overview of the business",
    "market_analysis": {
        "target_market": "Description of target customers",
        "market_size": "Estimated market size and growth potential",
        "competitors": ["List of main competitors"],
        "unique_value_proposition": "What makes this business unique",
    },
    "business_model": {
        "revenue_streams": ["Primary ways to generate revenue"],
        "pricing_strategy": "How to price products/services",
        "cost_structure": ["Major cost categories"],
    },
    "marketing_strategy": {
        "channels": ["Marketing channels to use"],
        "customer_acquisition": "How to attract customers",
        "retention_strategy": "How to keep customers",
    },
    "financial_projections": {
        "startup_costs": "Estimated initial investment needed",
        "monthly_burn_rate": "Expected monthly expenses",
        "break_even_timeline": "When the business will be profitable",
        "revenue_projections": "Expected revenue in first year",
    },
    "milestones": [
        {"timeline": "Month 1-3", "goal": "Specific goal", "metrics": "How to measure success"},
    ],
}

MARKETING_STRATEGY_SHAPE = {
    "target_audience": {
        "demographics": "Age, gender, income, location details",
        "psychographics": "Interests, values, lifestyle",
        "pain_points": ["Main problems they face"],
    },
    "positioning": {
        "brand_message": "Core message to communicate",
        "unique_selling_points": ["What makes us different"],
        "competitive_advantages": ["Why choose us over competitors"],
    },
    "channels": [
        {"name": "Channel name", "strategy": "How to use this channel",
         "budget_allocation": "Percentage of budget", "expected_roi": "Expected return on investment"},
    ],
    "content_calendar": [
        {"week": 1, "theme": "Weekly content theme",
         "content_types": ["Blog post", "Social media", "Email"], "goals": "What to achieve this week"},
    ],
    "metrics": {
        "kpis": ["Key performance indicators to track"],
        "tracking_methods": ["How to measure success"],
        "success_criteria": "Definition of success",
    },
}


def business_plan_prompt(business_idea: str, profile_context: dict) -> str:
    return (
        f'Generate a comprehensive business plan for the following idea: "{business_idea}"\n\n'
        f"User Profile Context:\n{json.dumps(profile_context, indent=2)}\n\n"
        "Please provide a detailed business plan in the following JSON format:\n"
        f"{json.dumps(BUSINESS_PLAN_SHAPE, indent=2)}\n\n"
        "Make the plan realistic based on the user's capital level and time commitment. "
        "Focus on actionable steps and practical implementation."
    )


def marketing_strategy_prompt(business_idea: str) -> str:
    return (
        f"Create a comprehensive marketing strategy for a {business_idea} business.\n\n"
        "Please provide a detailed marketing strategy in the following JSON format:\n"
        f"{json.dumps(MARKETING_STRATEGY_SHAPE, indent=2)}\n\n"
        "Focus on practical, actionable strategies that can be implemented immediately "
        "with limited resources."
    )


def business_names_prompt(industry: str, keywords: list[str]) -> str:
    return (
        f"Generate 10 creative, memorable business names for a {industry} company.\n\n"
        f"Keywords to incorporate (use some but not necessarily all): {', '.join(keywords)}\n\n"
        "Requirements:\n"
        "- Names should be easy to pronounce and spell\n"
        "- Prefer .com friendly names\n"
        "- Avoid generic or overused terms\n"
        "- Consider international appeal\n"
        "- Mix of naming styles (descriptive, invented, metaphorical, acronym)\n\n"
        "Return ONLY a JSON array of strings, no explanation needed:\n"
        '["Name1", "Name2", "Name3", ...]'
    )
