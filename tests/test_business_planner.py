"""
Business Planner Assistant Tests.

Covers:
    - Happy path through the local stub provider
    - Offline fallback when every attempt fails
    - Cache hit for business plans (same idea, same user)
    - Business names are never cached and must be a list
    - Malformed structured output is surfaced, not masked
"""

import json

import pytest

from app.ai.assistants.business_planner import BusinessPlanner
from app.ai.gateway import GenerationGateway, offline_business_names
from app.ai.retry import RetryPolicy
from app.core.exceptions import AuthenticationError, ConnectivityError, MalformedResponseError


def _planner(provider=None):
    gateway = GenerationGateway(provider, retry_policy=RetryPolicy(sleep=lambda _s: None))
    return BusinessPlanner(gateway)


class TestBusinessPlanner:

    def test_business_plan_from_stub(self, profile):
        outcome = _planner().generate_business_plan("mobile dog grooming", profile, user_id="u1")
        assert outcome["offline"] is False
        assert outcome["error"] is None
        assert outcome["cache_hit"] is False
        assert "mobile dog grooming" in outcome["result"]["executive_summary"]

    def test_profile_slice_in_prompt(self, scripted_provider, profile):
        provider = scripted_provider([json.dumps({"executive_summary": "x"})])
        _planner(provider).generate_business_plan("bakery", profile, user_id="u1")
        prompt = provider.calls[0]["user_prompt"]
        assert '"capital_level": "low"' in prompt
        assert "ada@example.com" not in prompt

    def test_second_plan_is_cache_hit(self, scripted_provider):
        provider = scripted_provider([json.dumps({"executive_summary": "x"})])
        planner = _planner(provider)
        planner.generate_business_plan("Bakery ", user_id="u1")
        outcome = planner.generate_business_plan("bakery", user_id="u1")
        assert outcome["cache_hit"] is True
        assert outcome["result"] == {"executive_summary": "x"}
        assert len(provider.calls) == 1

    def test_cache_is_per_user(self, scripted_provider):
        provider = scripted_provider([json.dumps({"executive_summary": "x"})])
        planner = _planner(provider)
        planner.generate_business_plan("bakery", user_id="u1")
        planner.generate_business_plan("bakery", user_id="u2")
        assert len(provider.calls) == 2

    def test_offline_fallback_after_connectivity_failures(self, scripted_provider):
        provider = scripted_provider([ConnectivityError("down")])
        outcome = _planner(provider).generate_marketing_strategy("bakery", user_id="u1")
        assert outcome["offline"] is True
        assert outcome["error"] == "connectivity"
        assert outcome["model"] == "offline"
        assert "positioning" in outcome["result"]
        assert len(provider.calls) == 2

    def test_offline_fallback_on_authentication_failure(self, scripted_provider):
        provider = scripted_provider([AuthenticationError("bad key", status_code=401)])
        outcome = _planner(provider).generate_business_names("fintech")
        assert outcome["offline"] is True
        assert outcome["error"] == "authentication"
        assert outcome["result"] == offline_business_names()

    def test_business_names_not_cached(self, scripted_provider):
        provider = scripted_provider(['["Alpha", "Beta"]'])
        planner = _planner(provider)
        planner.generate_business_names("fintech", ["pay"], user_id="u1")
        outcome = planner.generate_business_names("fintech", ["pay"], user_id="u1")
        assert outcome["result"] == ["Alpha", "Beta"]
        assert len(provider.calls) == 2

    def test_business_names_must_be_a_list(self, scripted_provider):
        provider = scripted_provider(['{"names": ["Alpha"]}'])
        with pytest.raises(MalformedResponseError):
            _planner(provider).generate_business_names("fintech")

    def test_malformed_plan_is_surfaced(self, scripted_provider):
        provider = scripted_provider(["Sure! Here is your plan: ..."])
        with pytest.raises(MalformedResponseError):
            _planner(provider).generate_business_plan("bakery")

    def test_custom_returns_text_with_default_model(self, scripted_provider):
        provider = scripted_provider(["Focus on one customer segment first."])
        planner = _planner(provider)
        outcome = planner.generate_custom("What should I do next?")
        assert outcome["result"] == "Focus on one customer segment first."
        assert provider.calls[0]["model"] == planner.gateway.selector.default_model

    def test_cache_key_normalises_idea(self):
        assert BusinessPlanner.cache_key("business_plan", "  Bakery ", None) == "business_plan:bakery:anonymous"
