"""
Sigma Business Automation
Model Selector.

Routes generation requests to a model:
    1. Explicit model from caller (passthrough)
    2. Capability → registry models advertising it → pick by priority
         cost    — cheapest cost per token
         speed   — smallest context window
         quality — largest context window
    3. Default fallback (``openrouter/auto``) when nothing advertises it

Ties keep registry order.
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "openrouter/auto"
PRIORITIES = ("cost", "quality", "speed")


@dataclass(frozen=True)
class ModelSpec:
    id: str
    name: str
    provider: str
    cost_per_token: float
    max_tokens: int
    capabilities: tuple[str, ...]


MODEL_REGISTRY = (
    ModelSpec("openai/gpt-4o", "GPT-4o", "openai", 0.00005, 128000,
              ("text-generation", "code-generation", "business-planning")),
    ModelSpec("openai/gpt-4o-mini", "GPT-4o Mini", "openai", 0.00015, 128000,
              ("text-generation", "code-generation")),
    ModelSpec("anthropic/claude-3.5-sonnet", "Claude 3.5 Sonnet", "anthropic", 0.003, 200000,
              ("text-generation", "document-analysis", "legal-drafting")),
    ModelSpec("anthropic/claude-3-haiku", "Claude 3 Haiku", "anthropic", 0.00025, 200000,
              ("text-generation", "document-analysis")),
    # cost is per image
    ModelSpec("openai/dall-e-3", "DALL-E 3", "openai", 0.04, 1024, ("image-generation",)),
)

# Task type → preferred model
TASK_DEFAULT_MODELS = {
    "business-planning": "openai/gpt-4o",
    "legal-drafting": "anthropic/claude-3.5-sonnet",
    "creative-writing": "openai/gpt-4o",
    "code-generation": "openai/gpt-4o",
    "image-generation": "openai/dall-e-3",
    "analysis": "anthropic/claude-3.5-sonnet",
    "general": DEFAULT_MODEL,
}


class ModelSelector:
    """Selects a model id for a capability and optimisation priority."""

    def __init__(self, registry=MODEL_REGISTRY, default_model: str = DEFAULT_MODEL):
        self.registry = tuple(registry)
        self.default_model = default_model

    def select(self, capability: str | None, priority: str = "quality",
               explicit_model: str | None = None) -> str:
        if explicit_model:
            return explicit_model

        candidates = [m for m in self.registry if capability in m.capabilities]
        if not candidates:
            logger.debug("ModelSelector: no model for capability=%s, using default=%s",
                         capability, self.default_model)
            return self.default_model

        if priority == "cost":
            chosen = min(candidates, key=lambda m: m.cost_per_token)
        elif priority == "speed":
            chosen = min(candidates, key=lambda m: m.max_tokens)
        else:
            if priority not in PRIORITIES:
                logger.warning("ModelSelector: unknown priority %r, using quality", priority)
            chosen = max(candidates, key=lambda m: m.max_tokens)

        logger.debug("ModelSelector: capability=%s priority=%s → model=%s",
                     capability, priority, chosen.id)
        return chosen.id

    def default_for_task(self, task_type: str) -> str:
        return TASK_DEFAULT_MODELS.get(task_type, self.default_model)

    def get_spec(self, model_id: str) -> ModelSpec | None:
        return next((m for m in self.registry if m.id == model_id), None)

    def estimate_cost(self, model_id: str, total_tokens: int) -> float:
        spec = self.get_spec(model_id)
        return round(spec.cost_per_token * total_tokens, 6) if spec else 0.0
