"""
Shared pytest fixtures for the Sigma Business Automation test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - user_id: Owner id used by lifecycle / context tests
    - profile: CompleteProfile-shaped dict
    - sleeps: Recorded backoff waits (fake sleep for RetryPolicy)
    - scripted_provider: GenerationProvider returning/raising a scripted sequence
"""

import pytest

from app import create_app
from app.ai.gateway import GenerationProvider
from app.models import db as _db


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
    # Lazy generation singletons would carry cache entries across tests
    for attr in ("_generation_gateway", "_business_planner"):
        if hasattr(app, attr):
            delattr(app, attr)


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def user_id():
    return "user-123"


@pytest.fixture()
def profile(user_id):
    return {
        "id": user_id,
        "name": "Ada Founder",
        "email": "ada@example.com",
        "created_at": "2026-01-15T10:30:00+00:00",
        "business_info": {
            "business_name": "Ada Analytics",
            "industry": "Software",
            "stage": "idea",
        },
        "business_type": "saas",
        "time_commitment": "part-time",
        "capital_level": "low",
        "completion_percentage": 60,
        "preferences": {"communication_style": "detailed"},
        "language": "en",
        "region": "US-CA",
    }


@pytest.fixture()
def sleeps():
    """List collecting every backoff wait; pass ``sleeps.append`` as sleep."""
    return []


class ScriptedProvider(GenerationProvider):
    """Replays a script: each item is a content string or an exception to raise."""

    name = "scripted"

    def __init__(self, script, finish_reason="stop"):
        self.script = list(script)
        self.finish_reason = finish_reason
        self.calls = []

    def complete(self, *, model, system_prompt, user_prompt, max_tokens, temperature):
        self.calls.append({"model": model, "system_prompt": system_prompt,
                           "user_prompt": user_prompt, "max_tokens": max_tokens,
                           "temperature": temperature})
        step = self.script[min(len(self.calls), len(self.script)) - 1]
        if isinstance(step, Exception):
            raise step
        return {
            "content": step,
            "finish_reason": self.finish_reason,
            "prompt_tokens": 10,
            "completion_tokens": 20,
            "model": model,
        }


@pytest.fixture()
def scripted_provider():
    """Factory: ``scripted_provider(["", ConnectivityError("x"), "ok"])``."""
    return ScriptedProvider
