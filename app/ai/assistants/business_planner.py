"""
Sigma Business Automation
Business Planner Assistant.

Generation pipeline for the four planner operations:
    1. Build the prompt (app.ai.prompts) from the idea + profile slice
    2. Gateway call: model selection, cache lookup, retry with backoff
    3. Parse the structured answer (plan, strategy, name list)
    4. On provider failure after retries, answer from the offline
       templates instead (``offline: True``) so the user is never left
       with an empty screen

MalformedResponseError is not masked: a provider that answered with
unparseable JSON is reported as such.

Cached for 15 minutes: business plan, marketing strategy.
Never cached: business names, custom prompts.
"""

import logging

from app.ai.gateway import (
    GenerationRequest,
    LocalStubProvider,
    offline_business_names,
    offline_business_plan,
    offline_marketing_strategy,
)
from app.ai.prompts import business_names_prompt, business_plan_prompt, marketing_strategy_prompt
from app.core.exceptions import GenerationError, MalformedResponseError, classify_generation_error

logger = logging.getLogger(__name__)

PLAN_CACHE_TTL = 15 * 60
PROFILE_CONTEXT_FIELDS = ("business_type", "time_commitment", "capital_level", "region")


class BusinessPlanner:
    """
    Business plan / marketing / naming / free-form generation over the gateway.

    Every method returns a dict:
        {result, offline, cache_hit, model, error}
    """

    def __init__(self, gateway):
        self.gateway = gateway

    @staticmethod
    def cache_key(operation: str, business_idea: str, user_id: str | None) -> str:
        return f"{operation}:{business_idea.strip().lower()}:{user_id or 'anonymous'}"

    def generate_business_plan(self, business_idea: str, profile: dict | None = None, *,
                               user_id: str | None = None, priority: str = "quality",
                               model: str | None = None) -> dict:
        profile = profile or {}
        context = {k: profile.get(k) for k in PROFILE_CONTEXT_FIELDS if profile.get(k) is not None}
        request = GenerationRequest(
            prompt=business_plan_prompt(business_idea, context),
            task_type="business-planning",
            capability="business-planning",
            priority=priority,
            model=model,
            expect_json=True,
            cache_key=self.cache_key("business_plan", business_idea, user_id),
            cache_operation="business_plan",
            cache_ttl=PLAN_CACHE_TTL,
            user_id=user_id,
        )
        return self._run(request, fallback=lambda: offline_business_plan(business_idea))

    def generate_marketing_strategy(self, business_idea: str, profile: dict | None = None, *,
                                    user_id: str | None = None, priority: str = "quality",
                                    model: str | None = None) -> dict:
        request = GenerationRequest(
            prompt=marketing_strategy_prompt(business_idea),
            task_type="marketing",
            capability="business-planning",
            priority=priority,
            model=model,
            expect_json=True,
            cache_key=self.cache_key("marketing_strategy", business_idea, user_id),
            cache_operation="marketing_strategy",
            cache_ttl=PLAN_CACHE_TTL,
            user_id=user_id,
        )
        return self._run(request, fallback=offline_marketing_strategy)

    def generate_business_names(self, industry: str, keywords: list[str] | None = None, *,
                                user_id: str | None = None, priority: str = "quality",
                                model: str | None = None) -> dict:
        request = GenerationRequest(
            prompt=business_names_prompt(industry, list(keywords or [])),
            task_type="branding",
            capability="text-generation",
            priority=priority,
            model=model,
            max_tokens=1000,
            temperature=0.9,
            expect_json=True,
            user_id=user_id,
        )
        outcome = self._run(request, fallback=offline_business_names)
        if not isinstance(outcome["result"], list):
            raise MalformedResponseError("Expected a JSON array of names", model=outcome["model"])
        return outcome

    def generate_custom(self, prompt: str, task_type: str = "general", *,
                        user_id: str | None = None, model: str | None = None) -> dict:
        request = GenerationRequest(
            prompt=prompt,
            task_type=task_type,
            model=model or self.gateway.selector.default_model,
            max_tokens=2000,
            user_id=user_id,
        )
        return self._run(request, fallback=lambda: LocalStubProvider.stub_content(prompt),
                         structured=False)

    def _run(self, request: GenerationRequest, *, fallback, structured: bool = True) -> dict:
        try:
            result = self.gateway.generate(request)
        except MalformedResponseError:
            raise
        except GenerationError as exc:
            reason = classify_generation_error(exc)
            logger.warning("Generation failed (%s), serving offline %s response",
                           reason, request.task_type, extra={"user_id": request.user_id})
            return {
                "result": fallback(),
                "offline": True,
                "cache_hit": False,
                "model": "offline",
                "error": reason,
            }

        return {
            "result": result.data if structured else result.content,
            "offline": False,
            "cache_hit": result.cache_hit,
            "model": result.model,
            "error": None,
        }
