"""
Context Synthesis Engine Tests.

Covers:
    - Structured snapshot shape (profile, progress, decisions, outputs)
    - Rendered YAML: placeholders, canonical key, deterministic hash
    - Persistence: insert, unchanged hash is not rewritten, version bump,
      size guard, missing table
    - Conversation aggregates
"""

from datetime import datetime, timezone

import pytest
import yaml

from app.models import db
from app.models.context import UserContextMaster
from app.models.conversation import ChatConversation, ChatMemory, ChatMessage
from app.services.context_synthesis import (
    ContextSynthesisService,
    DEFAULT_MAX_BYTES,
    content_hash,
)
from app.services.module_metadata import DEFAULT_BRAND_COLORS


def _module(module_id, status="completed", **kw):
    return {
        "module_id": module_id,
        "status": status,
        "progress": 100 if status == "completed" else 40,
        "metadata": kw.get("metadata", {}),
        "outputs": kw.get("outputs", {}),
        "last_activity": kw.get("last_activity", "2026-03-01T10:00:00+00:00"),
    }


@pytest.fixture()
def svc():
    return ContextSynthesisService()


# ═══════════════════════════════════════════════════════════════════════════
#  1. STRUCTURED SNAPSHOT
# ═══════════════════════════════════════════════════════════════════════════


class TestSynthesize:

    def test_profile_fields(self, svc, user_id, profile):
        structured = svc.synthesize(user_id, profile, modules=[])["structured"]
        assert structured["user_id"] == user_id
        assert structured["name"] == "Ada Founder"
        assert structured["joined_date"] == "2026-01-15"
        assert structured["business"]["name"] == "Ada Analytics"
        assert structured["business"]["legal_structure"] is None
        assert structured["preferences"]["communication_style"] == "detailed"
        assert structured["progress"]["profile_completion"] == 60

    def test_empty_profile_defaults(self, svc, user_id):
        structured = svc.synthesize(user_id, {}, modules=[])["structured"]
        assert structured["name"] == "User"
        assert structured["joined_date"] is None
        assert structured["preferences"]["communication_style"] == "concise"
        assert structured["preferences"]["language"] == "en"
        assert structured["progress"]["last_activity"] is None

    def test_unparseable_created_at_renders_not_set(self, svc, user_id, profile):
        snapshot = svc.synthesize(user_id, dict(profile, created_at="June 30, 2025"), modules=[])
        assert snapshot["structured"]["joined_date"] is None
        view = yaml.safe_load(snapshot["rendered"])["USER_CONTEXT"]
        assert view["joined_date"] == "Not set"

    def test_progress_section(self, svc, user_id, profile):
        modules = [
            _module("MOD_201", last_activity="2026-03-02T08:00:00Z"),
            _module("MOD_101", last_activity="2026-03-01T10:00:00+00:00"),
            _module("MOD_102", status="active", last_activity="2026-02-01T10:00:00+00:00"),
            _module("MOD_202", status="paused"),
        ]
        progress = svc.synthesize(user_id, profile, modules=modules)["structured"]["progress"]
        assert progress["modules_completed"] == ["MOD_101", "MOD_201"]
        assert progress["modules_active"] == ["MOD_102"]
        assert progress["total_tasks_completed"] == 2
        assert progress["last_activity"] == "2026-03-02T08:00:00+00:00"

    def test_reads_stored_records_when_modules_omitted(self, svc, user_id, profile):
        from app.services.module_lifecycle import ModuleLifecycleService

        lifecycle = ModuleLifecycleService(user_id)
        lifecycle.activate("MOD_101")
        lifecycle.update_progress("MOD_101", 100)

        structured = svc.synthesize(user_id, profile)["structured"]
        assert structured["progress"]["modules_completed"] == ["MOD_101"]


class TestDecisions:

    def test_legal_setup_decisions(self, svc):
        module = _module("MOD_201", metadata={
            "legal_structure": "LLC", "legal_reason": "Liability protection",
            "state": "Wyoming",
        })
        decisions = svc.extract_decisions([module])
        assert decisions == [
            {"type": "legal_structure", "choice": "LLC", "reason": "Liability protection",
             "date": "2026-03-01T10:00:00+00:00"},
            {"type": "incorporation_state", "choice": "Wyoming", "reason": None,
             "date": "2026-03-01T10:00:00+00:00"},
        ]

    def test_only_completed_modules_contribute(self, svc, user_id):
        modules = [_module("MOD_201", status="active", metadata={"legal_structure": "LLC"})]
        assert svc.synthesize(user_id, {}, modules=modules)["structured"]["decisions"] == []

    def test_custom_extractor(self, user_id):
        svc = ContextSynthesisService(decision_extractors={
            "MOD_102": lambda m: [{"type": "vision", "choice": m["metadata"]["vision"], "date": None}],
        })
        modules = [_module("MOD_102", metadata={"vision": "Remote-first"})]
        decisions = svc.synthesize(user_id, {}, modules=modules)["structured"]["decisions"]
        assert decisions == [{"type": "vision", "choice": "Remote-first", "date": None}]


class TestOutputs:

    def test_documents_deduplicated_first_seen_wins(self, svc):
        modules = [
            _module("MOD_201", outputs={"documents": ["Operating Agreement", "Business Plan"]}),
        ]
        assert svc.extract_documents(modules) == [
            "Operating Agreement", "Business Plan", "Articles of Organization", "EIN Confirmation",
        ]

    def test_catalog_documents_only_for_completed(self, svc):
        modules = [_module("MOD_201", status="active", outputs={"documents": "Draft Bylaws"})]
        assert svc.extract_documents(modules) == ["Draft Bylaws"]

    def test_branding_not_completed(self, svc):
        modules = [_module("MOD_301", status="active", outputs={"colors": ["#000000"]})]
        assert svc.extract_branding(modules) == {
            "logo_generated": False, "colors": [], "brand_name": None,
        }

    def test_branding_completed_with_colors(self, svc):
        modules = [_module("MOD_301", outputs={"colors": ["#112233"], "brand_name": "Ada"})]
        assert svc.extract_branding(modules) == {
            "logo_generated": True, "colors": ["#112233"], "brand_name": "Ada",
        }

    def test_branding_completed_default_colors(self, svc):
        branding = svc.extract_branding([_module("MOD_301")])
        assert branding["colors"] == list(DEFAULT_BRAND_COLORS)

    @pytest.mark.parametrize("status,expected", [
        ("completed", "live"), ("active", "in_progress"), ("paused", "not_started"),
    ])
    def test_website_status(self, svc, status, expected):
        modules = [_module("MOD_501", status=status, outputs={"domain": "ada.dev"})]
        assert svc.extract_website(modules) == {"domain": "ada.dev", "status": expected}

    def test_website_without_record(self, svc):
        assert svc.extract_website([]) == {"domain": None, "status": "not_started"}


# ═══════════════════════════════════════════════════════════════════════════
#  2. RENDERING & HASH
# ═══════════════════════════════════════════════════════════════════════════


class TestRender:

    def test_placeholders_for_absent_values(self, svc, user_id):
        rendered = svc.synthesize(user_id, {}, modules=[])["rendered"]
        view = yaml.safe_load(rendered)["USER_CONTEXT"]
        assert view["joined_date"] == "Not set"
        assert view["business"]["legal_structure"] == "Not decided"
        assert view["business"]["stage"] == "Just Starting"
        assert view["progress"]["last_activity"] == "Never"
        assert view["progress"]["profile_completion"] == "0%"
        assert view["decisions"] == ["None recorded"]
        assert view["outputs"]["documents"] == ["None generated"]
        assert view["outputs"]["website"]["domain"] == "Not registered"
        assert view["conversation_history"]["last_conversation"] == "Never"

    def test_structured_keeps_none(self, svc, user_id):
        structured = svc.synthesize(user_id, {}, modules=[])["structured"]
        assert structured["business"]["stage"] is None
        assert structured["outputs"]["documents"] == []

    def test_key_order_is_preserved(self, svc, user_id, profile):
        rendered = svc.synthesize(user_id, profile, modules=[])["rendered"]
        assert rendered.startswith("USER_CONTEXT:\n  user_id:")
        assert rendered.index("business:") < rendered.index("progress:") < rendered.index("decisions:")

    def test_hash_is_sha256_of_rendered(self, svc, user_id, profile):
        snapshot = svc.synthesize(user_id, profile, modules=[_module("MOD_101")])
        assert snapshot["hash"] == content_hash(snapshot["rendered"])
        assert len(snapshot["hash"]) == 64

    def test_same_inputs_same_hash(self, svc, user_id, profile):
        modules = [_module("MOD_201"), _module("MOD_101")]
        first = svc.synthesize(user_id, profile, modules=modules)
        second = svc.synthesize(user_id, profile, modules=list(reversed(modules)))
        assert first["rendered"] == second["rendered"]
        assert first["hash"] == second["hash"]

    def test_visible_change_changes_hash(self, svc, user_id, profile):
        first = svc.synthesize(user_id, profile, modules=[])
        changed = dict(profile, completion_percentage=80)
        assert svc.synthesize(user_id, changed, modules=[])["hash"] != first["hash"]


# ═══════════════════════════════════════════════════════════════════════════
#  3. PERSISTENCE
# ═══════════════════════════════════════════════════════════════════════════


class TestPersist:

    def test_first_write_inserts_version_one(self, svc, user_id, profile):
        assert svc.update_user_context(user_id, profile, modules=[]) is True
        row = UserContextMaster.query.filter_by(user_id=user_id).one()
        assert row.context_version == 1
        assert row.update_count == 1
        assert row.context_yaml.startswith("USER_CONTEXT:")
        assert row.size_bytes > 0

    def test_unchanged_hash_is_not_rewritten(self, svc, user_id, profile):
        svc.update_user_context(user_id, profile, modules=[])
        first_updated = UserContextMaster.query.filter_by(user_id=user_id).one().last_updated

        assert svc.update_user_context(user_id, profile, modules=[]) is True

        row = UserContextMaster.query.filter_by(user_id=user_id).one()
        assert row.update_count == 1
        assert row.context_version == 1
        assert row.last_updated == first_updated

    def test_changed_snapshot_bumps_version(self, svc, user_id, profile):
        svc.update_user_context(user_id, profile, modules=[])
        svc.update_user_context(user_id, profile, modules=[_module("MOD_101")])

        row = UserContextMaster.query.filter_by(user_id=user_id).one()
        assert row.context_version == 2
        assert row.update_count == 2
        assert row.context_json["progress"]["modules_completed"] == ["MOD_101"]

    def test_oversized_snapshot_is_not_stored(self, user_id, profile):
        svc = ContextSynthesisService(max_bytes=256)
        assert svc.update_user_context(user_id, profile, modules=[]) is False
        assert UserContextMaster.query.count() == 0
        assert svc.get_user_context(user_id) is None

    def test_max_bytes_from_app_config(self, app):
        assert ContextSynthesisService().max_bytes == app.config["CONTEXT_MAX_BYTES"]
        assert DEFAULT_MAX_BYTES == 50 * 1024

    def test_missing_table_is_soft(self, svc, user_id, profile):
        UserContextMaster.__table__.drop(db.engine)
        assert svc.update_user_context(user_id, profile, modules=[]) is False
        assert svc.get_user_context(user_id) is None
        assert svc.get_snapshot(user_id) is None

    def test_get_user_context_returns_yaml(self, svc, user_id, profile):
        snapshot = svc.synthesize(user_id, profile, modules=[])
        svc.persist(user_id, snapshot["rendered"], snapshot["structured"], snapshot["hash"])
        assert svc.get_user_context(user_id) == snapshot["rendered"]

    def test_snapshots_are_per_user(self, svc, profile):
        svc.update_user_context("user-a", profile, modules=[])
        svc.update_user_context("user-b", profile, modules=[])
        assert UserContextMaster.query.count() == 2


# ═══════════════════════════════════════════════════════════════════════════
#  4. CONVERSATION AGGREGATES
# ═══════════════════════════════════════════════════════════════════════════


class TestConversationStats:

    def _seed(self, user_id):
        conv = ChatConversation(user_id=user_id, title="Getting started",
                                updated_at=datetime(2026, 3, 5, 12, 0, tzinfo=timezone.utc))
        db.session.add(conv)
        db.session.flush()
        for i in range(3):
            db.session.add(ChatMessage(conversation_id=conv.id, role="user", content=f"q{i}"))
        other = ChatConversation(user_id="someone-else")
        db.session.add(other)
        db.session.flush()
        db.session.add(ChatMessage(conversation_id=other.id, role="user", content="not mine"))
        for i, importance in enumerate([3, 9, 5, 7, 1, 8]):
            db.session.add(ChatMemory(user_id=user_id, category="topic", key=f"t{i}",
                                      value=f"topic-{importance}", importance=importance))
        db.session.add(ChatMemory(user_id=user_id, category="goal", key="g", value="raise seed",
                                  importance=10))
        db.session.commit()

    def test_no_conversations(self, svc, user_id):
        assert svc.fetch_conversation_stats(user_id) == {
            "total_messages": 0,
            "common_topics": [],
            "last_conversation": None,
            "key_questions_asked": [],
        }

    def test_counts_and_topics(self, svc, user_id):
        self._seed(user_id)
        stats = svc.fetch_conversation_stats(user_id)
        assert stats["total_messages"] == 3
        assert stats["common_topics"] == ["topic-9", "topic-8", "topic-7", "topic-5", "topic-3"]
        assert stats["last_conversation"] == "2026-03-05T12:00:00+00:00"

    def test_missing_tables_read_as_zero(self, svc, user_id):
        ChatMessage.__table__.drop(db.engine)
        assert svc.fetch_conversation_stats(user_id)["total_messages"] == 0
