"""
Sigma Business Automation
Generation Gateway.

Provider-agnostic "submit prompt, get text" facility with:
    - Capability / priority model selection (ModelSelector)
    - Lookaside cache keyed by the caller (ResponseCacheService)
    - Bounded retry with linear backoff, early abort on connectivity (RetryPolicy)
    - Empty content treated as a failed attempt
    - Optional structured (JSON) parsing; parse failure → MalformedResponseError,
      nothing cached

Providers:
    - OpenRouterProvider: OpenAI-compatible chat completions (``openai`` SDK
      pointed at OPENROUTER_BASE_URL)
    - LocalStubProvider: deterministic offline responses (dev/test, and the
      content source of the planner's offline fallback)

Usage:
    from app.ai.gateway import GenerationGateway, GenerationRequest
    gw = GenerationGateway.from_config(app.config)
    result = gw.generate(GenerationRequest(prompt="...", task_type="business-planning",
                                           capability="business-planning", expect_json=True))
"""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any

import openai

from app.ai.cache import ResponseCacheService
from app.ai.model_selector import DEFAULT_MODEL, ModelSelector
from app.ai.prompts import system_prompt_for
from app.ai.retry import RetryPolicy
from app.core.exceptions import (
    AuthenticationError,
    ConnectivityError,
    MalformedRequestError,
    MalformedResponseError,
    ProviderError,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4000
DEFAULT_TEMPERATURE = 0.7


# ── Request / Result ─────────────────────────────────────────────────────────

@dataclass
class GenerationRequest:
    prompt: str
    task_type: str = "general"
    capability: str | None = None
    priority: str = "quality"
    model: str | None = None
    system_prompt: str | None = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    expect_json: bool = False
    cache_key: str | None = None
    cache_operation: str = "general"
    cache_ttl: int | None = None
    user_id: str | None = None


@dataclass
class GenerationResult:
    content: str
    model: str
    data: Any = None
    finish_reason: str | None = None
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost_usd: float = 0.0
    latency_ms: int = 0
    attempts: int = 0
    provider: str = ""
    cache_hit: bool = False
    confidence: float = 0.0
    extra: dict = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> dict:
        d = asdict(self)
        d["total_tokens"] = self.total_tokens
        return d


def confidence_for(content: str, finish_reason: str | None) -> float:
    """Completeness score from the provider's finish reason."""
    if not content:
        return 0.0
    if finish_reason == "length":
        return 0.6
    if finish_reason == "stop":
        return 0.9
    return 0.7


_FENCE_RE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


def parse_structured(content: str, *, model: str | None = None):
    """Parse a JSON document, tolerating a surrounding markdown code fence."""
    match = _FENCE_RE.match(content)
    text = match.group(1) if match else content
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise MalformedResponseError(f"Response is not valid JSON: {exc}", model=model) from exc


# ── Provider Abstract Base ───────────────────────────────────────────────────

class GenerationProvider(ABC):
    """Abstract "submit prompt, get text" capability."""

    name = "abstract"

    @abstractmethod
    def complete(self, *, model: str, system_prompt: str, user_prompt: str,
                 max_tokens: int, temperature: float) -> dict:
        """
        Returns:
            dict with keys: content, finish_reason, prompt_tokens, completion_tokens, model
        Raises:
            GenerationError subclasses for transport / upstream failures.
        """
        ...


# ── OpenRouter (OpenAI-compatible) Provider ─────────────────────────────────

class OpenRouterProvider(GenerationProvider):
    """Chat completions through an OpenAI-compatible endpoint."""

    name = "openrouter"

    def __init__(self, api_key: str, base_url: str, timeout: float = 60):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            self._client = openai.OpenAI(api_key=self.api_key, base_url=self.base_url,
                                         timeout=self.timeout, max_retries=0)
        return self._client

    def complete(self, *, model, system_prompt, user_prompt, max_tokens, temperature) -> dict:
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.APIConnectionError as exc:
            raise ConnectivityError(f"Provider unreachable: {exc}", model=model) from exc
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise AuthenticationError(f"Provider rejected credentials: {exc}", model=model,
                                      status_code=exc.status_code) from exc
        except openai.UnprocessableEntityError as exc:
            raise MalformedRequestError(f"Provider rejected request: {exc}", model=model,
                                        status_code=exc.status_code) from exc
        except openai.APIStatusError as exc:
            raise ProviderError(f"Provider error ({exc.status_code}): {exc}", model=model,
                                status_code=exc.status_code) from exc

        choice = response.choices[0] if response.choices else None
        usage = response.usage
        return {
            "content": (choice.message.content if choice else "") or "",
            "finish_reason": choice.finish_reason if choice else None,
            "prompt_tokens": usage.prompt_tokens if usage else 0,
            "completion_tokens": usage.completion_tokens if usage else 0,
            "model": response.model or model,
        }


# ── Local Stub Provider (dev/test/offline) ───────────────────────────────────

class LocalStubProvider(GenerationProvider):
    """Deterministic responses keyed by task type; never touches the network."""

    name = "local"

    def complete(self, *, model, system_prompt, user_prompt, max_tokens, temperature) -> dict:
        content = self.stub_content(user_prompt, system_prompt)
        return {
            "content": content,
            "finish_reason": "stop",
            "prompt_tokens": len(user_prompt.split()) * 2,  # rough estimate
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    @staticmethod
    def stub_content(user_prompt: str, system_prompt: str = "") -> str:
        lower = user_prompt.lower()

        if "business plan" in lower:
            return json.dumps(offline_business_plan(_quoted(user_prompt) or "your business idea"))
        if "marketing strategy" in lower:
            return json.dumps(offline_marketing_strategy())
        if "business names" in lower:
            return json.dumps(offline_business_names())

        return (
            "Here is a practical next step: pick the single most important outcome for this "
            "week, break it into three tasks, and finish the first one today. Review progress "
            "at the end of the week and adjust."
        )


def _quoted(text: str) -> str | None:
    match = re.search(r'"([^"]+)"', text)
    return match.group(1) if match else None


def offline_business_plan(business_idea: str) -> dict:
    return {
        "executive_summary": f"A lean launch plan for {business_idea}: validate demand with a "
                             "small pilot, then scale the channels that convert.",
        "market_analysis": {
            "target_market": "Early adopters in your local market and online niche communities",
            "market_size": "Start with a serviceable market you can reach directly",
            "competitors": ["Established local providers", "Online marketplaces"],
            "unique_value_proposition": "Faster, more personal service than incumbents",
        },
        "business_model": {
            "revenue_streams": ["Direct sales", "Recurring service packages"],
            "pricing_strategy": "Price at market rate, discount the first pilot customers",
            "cost_structure": ["Tools and software", "Marketing", "Fulfilment"],
        },
        "marketing_strategy": {
            "channels": ["Social media", "Referrals", "Local partnerships"],
            "customer_acquisition": "Offer a pilot to 10 customers from your network",
            "retention_strategy": "Follow up monthly and reward referrals",
        },
        "financial_projections": {
            "startup_costs": "Keep initial spend under one month of expenses",
            "monthly_burn_rate": "Track weekly; cut anything without a measurable return",
            "break_even_timeline": "6-12 months",
            "revenue_projections": "Grow month over month from the pilot base",
        },
        "milestones": [
            {"timeline": "Month 1-3", "goal": "Validate demand with pilot customers",
             "metrics": "10 paying customers"},
            {"timeline": "Month 4-6", "goal": "Systematize delivery and marketing",
             "metrics": "Repeatable weekly acquisition"},
        ],
    }


def offline_marketing_strategy() -> dict:
    return {
        "target_audience": {
            "demographics": "Adults 25-45 in your primary region",
            "psychographics": "Value convenience and quality",
            "pain_points": ["Limited time", "Unreliable providers"],
        },
        "positioning": {
            "brand_message": "Reliable results without the hassle",
            "unique_selling_points": ["Fast turnaround", "Personal service"],
            "competitive_advantages": ["Lower overhead", "Direct founder involvement"],
        },
        "channels": [
            {"name": "Social Media", "strategy": "Share customer results weekly",
             "budget_allocation": "40%", "expected_roi": "2x"},
            {"name": "Email", "strategy": "Monthly newsletter to leads and customers",
             "budget_allocation": "20%", "expected_roi": "3x"},
        ],
        "content_calendar": [
            {"week": 1, "theme": "Introduce the business",
             "content_types": ["Social media", "Email"], "goals": "First 100 followers"},
        ],
        "metrics": {
            "kpis": ["Leads per week", "Conversion rate", "Customer acquisition cost"],
            "tracking_methods": ["UTM links", "Simple CRM spreadsheet"],
            "success_criteria": "Positive return on marketing spend within 90 days",
        },
    }


def offline_business_names() -> list[str]:
    return ["Northpeak", "Brightlane", "Kindred Works", "Sumo Labs", "Clearpath Co"]


# ── Generation Gateway (Main Interface) ──────────────────────────────────────

class GenerationGateway:
    """
    Central entry point for generation calls.

    Args:
        provider: GenerationProvider; defaults to LocalStubProvider.
        selector: ModelSelector for capability/priority routing.
        cache: ResponseCacheService (lookaside).
        retry_policy: RetryPolicy (attempts, backoff, abort predicate).
    """

    def __init__(self, provider: GenerationProvider | None = None, *, selector=None,
                 cache=None, retry_policy=None):
        self.provider = provider or LocalStubProvider()
        self.selector = selector or ModelSelector()
        self.cache = cache if cache is not None else ResponseCacheService()
        self.retry_policy = retry_policy or RetryPolicy()

    @classmethod
    def from_config(cls, config) -> "GenerationGateway":
        api_key = config.get("OPENROUTER_API_KEY", "")
        if api_key:
            provider = OpenRouterProvider(
                api_key=api_key,
                base_url=config.get("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
                timeout=config.get("LLM_REQUEST_TIMEOUT", 60),
            )
        else:
            logger.info("OPENROUTER_API_KEY not set, using local stub provider")
            provider = LocalStubProvider()
        return cls(
            provider,
            selector=ModelSelector(default_model=config.get("LLM_DEFAULT_MODEL", DEFAULT_MODEL)),
            cache=ResponseCacheService(ttl_seconds=config.get("GENERATION_CACHE_TTL", 900)),
            retry_policy=RetryPolicy(max_attempts=config.get("LLM_MAX_ATTEMPTS", 3)),
        )

    def resolve_model(self, request: GenerationRequest) -> str:
        if request.model:
            return request.model
        if request.capability:
            return self.selector.select(request.capability, request.priority)
        return self.selector.default_for_task(request.task_type)

    def generate(self, request: GenerationRequest, max_attempts: int | None = None) -> GenerationResult:
        """
        Run one generation request.

        Raises:
            RetryExhaustedError: every attempt failed (``last_error`` says why).
            MalformedResponseError: ``expect_json`` and the text did not parse.
        """
        model = self.resolve_model(request)
        use_cache = bool(request.cache_key) and self.cache.should_cache(request.cache_operation)

        # ── Cache lookup ──────────────────────────────────────────────────
        if use_cache:
            cached = self.cache.get(request.cache_key)
            if cached is not None:
                logger.debug("Generation cache hit: %s", request.cache_key)
                return GenerationResult(
                    content=cached["content"],
                    data=cached.get("data"),
                    model=cached.get("model", model),
                    finish_reason=cached.get("finish_reason"),
                    provider="cache",
                    cache_hit=True,
                    confidence=confidence_for(cached["content"], cached.get("finish_reason")),
                )

        system_prompt = request.system_prompt or system_prompt_for(request.task_type)

        def attempt_call(attempt: int) -> dict:
            raw = self.provider.complete(
                model=model,
                system_prompt=system_prompt,
                user_prompt=request.prompt,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
            )
            if not (raw.get("content") or "").strip():
                raise MalformedResponseError("Empty response from generation provider", model=model)
            return raw

        # ── Retry loop ────────────────────────────────────────────────────
        policy = self.retry_policy.with_attempts(max_attempts)
        start = time.time()
        raw, attempts = policy.run(attempt_call, model=model)
        latency_ms = int((time.time() - start) * 1000)

        content = raw["content"]
        data = parse_structured(content, model=model) if request.expect_json else None

        result = GenerationResult(
            content=content,
            data=data,
            model=raw.get("model") or model,
            finish_reason=raw.get("finish_reason"),
            prompt_tokens=raw.get("prompt_tokens", 0),
            completion_tokens=raw.get("completion_tokens", 0),
            latency_ms=latency_ms,
            attempts=attempts,
            provider=self.provider.name,
            confidence=confidence_for(content, raw.get("finish_reason")),
        )
        result.cost_usd = self.selector.estimate_cost(model, result.total_tokens)

        if use_cache:
            self.cache.set(
                request.cache_key,
                {"content": content, "data": data, "model": result.model,
                 "finish_reason": result.finish_reason},
                ttl_seconds=request.cache_ttl,
            )

        logger.info(
            "Generation ok: task=%s model=%s attempts=%d tokens=%d latency=%dms",
            request.task_type, result.model, attempts, result.total_tokens, latency_ms,
            extra={"model": result.model, "attempt": attempts, "user_id": request.user_id},
        )
        return result
