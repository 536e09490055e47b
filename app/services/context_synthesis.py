"""
Sigma Business Automation
Context Synthesis Engine.

Turns a user's profile, module records and conversation aggregates into one
snapshot for the assistant:

    synthesize(user_id, profile, modules=None) → {"rendered", "structured", "hash"}
    persist(user_id, rendered, structured, hash) → bool
    update_user_context(...)                    → synthesize + persist
    get_user_context(user_id)                   → stored YAML or None

``structured`` keeps absent values as None. ``rendered`` is the YAML form
under a top-level ``USER_CONTEXT`` key, with every absent value replaced by
a fixed placeholder so the text (and its SHA-256 hash) only changes when
something the user can see changed.

A snapshot whose hash matches the stored one is not written again. A
missing ``user_context_master`` table makes persistence a logged no-op
(returns False); the in-memory result is still returned by synthesize.
"""

import hashlib
import json
import logging
from datetime import datetime, timezone

import yaml
from flask import current_app, has_app_context
from sqlalchemy import func

from app.core.exceptions import FeatureNotProvisionedError, StoreError
from app.models import db
from app.models.context import UserContextMaster
from app.models.conversation import ChatConversation, ChatMemory, ChatMessage
from app.models.module import ModuleActivation, as_utc
from app.services.module_catalog import default_catalog
from app.services.module_metadata import (
    BRAND_IDENTITY_MODULE,
    DEFAULT_BRAND_COLORS,
    LEGAL_SETUP_MODULE,
    WEBSITE_MODULE,
    BrandingOutputs,
    LegalSetupMetadata,
    WebsiteOutputs,
    output_documents,
)
from app.services.record_store import read_or_empty, store_operation

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 50 * 1024
TOPIC_LIMIT = 5

# Placeholders used in the rendered form, keyed by (section, field)
PLACEHOLDERS = {
    ("business", "name"): "Not set",
    ("business", "industry"): "Not specified",
    ("business", "legal_structure"): "Not decided",
    ("business", "state"): "Not specified",
    ("business", "stage"): "Just Starting",
    ("business", "description"): "Not provided",
    ("business", "target_audience"): "Not defined",
    ("business", "business_model"): "Not specified",
    ("business", "business_type"): "Not selected",
    ("business", "time_commitment"): "Not specified",
    ("business", "capital_level"): "Not specified",
    ("progress", "last_activity"): "Never",
    ("preferences", "time_commitment"): "Not specified",
    ("preferences", "capital_available"): "Not specified",
    ("preferences", "region"): "Not specified",
    ("conversation_history", "last_conversation"): "Never",
    ("branding", "brand_name"): "Not set",
    ("website", "domain"): "Not registered",
}
NOT_SET = "Not set"
NONE_RECORDED = "None recorded"
NONE_GENERATED = "None generated"


# ── Decision extractors ──────────────────────────────────────────────────────

def _legal_setup_decisions(module: dict) -> list[dict]:
    legal = LegalSetupMetadata.from_bag(module.get("metadata"))
    date = module.get("last_activity")
    decisions = []
    if legal.legal_structure:
        decisions.append({"type": "legal_structure", "choice": legal.legal_structure,
                          "reason": legal.legal_reason, "date": date})
    if legal.state:
        decisions.append({"type": "incorporation_state", "choice": legal.state,
                          "reason": legal.state_reason, "date": date})
    return decisions


# module_id -> callable(module dict) -> list of decision dicts
DECISION_EXTRACTORS = {
    LEGAL_SETUP_MODULE: _legal_setup_decisions,
}


# ── Helpers ──────────────────────────────────────────────────────────────────

def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _module_dict(module) -> dict:
    return module.to_dict() if hasattr(module, "to_dict") else dict(module)


def _parse_ts(value):
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError:
        logger.debug("Unparseable timestamp %r treated as unset", value)
        return None


def _iso(value):
    parsed = _parse_ts(value)
    return parsed.isoformat() if parsed else None


def _date_only(value):
    parsed = _parse_ts(value)
    return parsed.date().isoformat() if parsed else None


class ContextSynthesisService:
    """
    Builds, renders and persists user context snapshots.

    Args:
        catalog: ModuleCatalog for output-document lookups.
        max_bytes: Size ceiling for a persisted snapshot. Defaults to the
            app's CONTEXT_MAX_BYTES, or 50 KB outside an app context.
        decision_extractors: Override of DECISION_EXTRACTORS.
    """

    def __init__(self, *, catalog=None, max_bytes: int | None = None, decision_extractors=None):
        self.catalog = catalog or default_catalog
        if max_bytes is None and has_app_context():
            max_bytes = current_app.config.get("CONTEXT_MAX_BYTES")
        self.max_bytes = max_bytes or DEFAULT_MAX_BYTES
        self.decision_extractors = dict(decision_extractors or DECISION_EXTRACTORS)

    # ── Synthesis ────────────────────────────────────────────────────────

    def synthesize(self, user_id: str, profile: dict, modules=None) -> dict:
        """Build the snapshot. ``modules`` defaults to the stored records."""
        if modules is None:
            modules = self.fetch_module_activations(user_id)
        records = sorted((_module_dict(m) for m in modules), key=lambda m: m["module_id"])
        profile = profile or {}
        business_info = profile.get("business_info") or {}

        completed = [m for m in records if m.get("status") == "completed"]
        activity = [ts for ts in (_parse_ts(m.get("last_activity")) for m in records) if ts]

        structured = {
            "user_id": user_id,
            "name": profile.get("name") or "User",
            "email": profile.get("email") or "",
            "joined_date": _date_only(profile.get("created_at")),
            "business": {
                "name": business_info.get("business_name"),
                "industry": business_info.get("industry") or profile.get("industry"),
                "legal_structure": business_info.get("legal_structure"),
                "state": business_info.get("state"),
                "stage": business_info.get("stage") or profile.get("skill_level"),
                "description": business_info.get("description"),
                "target_audience": business_info.get("target_audience"),
                "business_model": business_info.get("business_model"),
                "business_type": profile.get("business_type"),
                "time_commitment": profile.get("time_commitment"),
                "capital_level": profile.get("capital_level"),
            },
            "progress": {
                "profile_completion": int(profile.get("completion_percentage") or 0),
                "modules_completed": [m["module_id"] for m in completed],
                "modules_active": [m["module_id"] for m in records if m.get("status") == "active"],
                "total_tasks_completed": len(completed),
                "last_activity": max(activity).isoformat() if activity else None,
            },
            "decisions": self.extract_decisions(completed),
            "outputs": {
                "documents": self.extract_documents(records),
                "branding": self.extract_branding(records),
                "website": self.extract_website(records),
            },
            "preferences": {
                "communication_style": (profile.get("preferences") or {}).get("communication_style")
                or "concise",
                "time_commitment": profile.get("time_commitment"),
                "capital_available": profile.get("capital_level"),
                "stealth_mode": bool(profile.get("stealth_mode")),
                "language": profile.get("language") or "en",
                "region": profile.get("region"),
            },
            "conversation_history": self.fetch_conversation_stats(user_id),
        }

        rendered = self.render(structured)
        return {"rendered": rendered, "structured": structured, "hash": content_hash(rendered)}

    def extract_decisions(self, completed_modules: list[dict]) -> list[dict]:
        decisions = []
        for module in completed_modules:
            extractor = self.decision_extractors.get(module.get("module_id"))
            if extractor:
                decisions.extend(extractor(module))
        for decision in decisions:
            decision["date"] = _iso(decision.get("date"))
        return decisions

    def extract_documents(self, modules: list[dict]) -> list[str]:
        """Recorded plus catalog documents, de-duplicated, first seen wins."""
        documents: list[str] = []
        for module in modules:
            documents.extend(output_documents(module.get("outputs")))
            definition = self.catalog.get(module.get("module_id"))
            if module.get("status") == "completed" and definition:
                documents.extend(definition.output_documents)
        return list(dict.fromkeys(documents))

    @staticmethod
    def extract_branding(modules: list[dict]) -> dict:
        module = next((m for m in modules if m.get("module_id") == BRAND_IDENTITY_MODULE), None)
        if not module or module.get("status") != "completed":
            return {"logo_generated": False, "colors": [], "brand_name": None}
        branding = BrandingOutputs.from_bag(module.get("outputs"))
        return {
            "logo_generated": True,
            "colors": branding.colors or list(DEFAULT_BRAND_COLORS),
            "brand_name": branding.brand_name,
        }

    @staticmethod
    def extract_website(modules: list[dict]) -> dict:
        module = next((m for m in modules if m.get("module_id") == WEBSITE_MODULE), None)
        if not module:
            return {"domain": None, "status": "not_started"}
        status = {"completed": "live", "active": "in_progress"}.get(module.get("status"), "not_started")
        return {"domain": WebsiteOutputs.from_bag(module.get("outputs")).domain, "status": status}

    # ── Rendering ────────────────────────────────────────────────────────

    def render(self, structured: dict) -> str:
        """Canonical YAML text of a structured snapshot."""
        view = json.loads(json.dumps(structured))
        view["joined_date"] = view["joined_date"] or NOT_SET
        for section in ("business", "progress", "preferences", "conversation_history"):
            self._fill(section, view[section])
        self._fill("branding", view["outputs"]["branding"])
        self._fill("website", view["outputs"]["website"])
        for decision in view["decisions"]:
            decision["reason"] = decision.get("reason") or "Not specified"
            decision["date"] = decision.get("date") or NOT_SET
        if not view["decisions"]:
            view["decisions"] = [NONE_RECORDED]
        if not view["outputs"]["documents"]:
            view["outputs"]["documents"] = [NONE_GENERATED]
        history = view["conversation_history"]
        if not history["key_questions_asked"]:
            history["key_questions_asked"] = [NONE_RECORDED]
        view["progress"]["profile_completion"] = f"{view['progress']['profile_completion']}%"

        return yaml.safe_dump(
            {"USER_CONTEXT": view},
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )

    @staticmethod
    def _fill(section: str, values: dict):
        for key, value in values.items():
            if value is None or value == "":
                values[key] = PLACEHOLDERS.get((section, key), NOT_SET)

    # ── Aggregates ───────────────────────────────────────────────────────

    def fetch_module_activations(self, user_id: str) -> list[dict]:
        rows = read_or_empty(
            lambda: ModuleActivation.query.filter_by(user_id=user_id).order_by(ModuleActivation.id).all(),
            table="module_activations",
        )
        return [row.to_dict() for row in rows]

    def fetch_conversation_stats(self, user_id: str) -> dict:
        """Message count, top topics, last conversation. No data means zeros."""
        stats = {
            "total_messages": 0,
            "common_topics": [],
            "last_conversation": None,
            "key_questions_asked": [],
        }
        try:
            with store_operation("read conversation stats", table="chat_conversations"):
                stats["total_messages"] = (
                    db.session.query(func.count(ChatMessage.id))
                    .join(ChatConversation, ChatMessage.conversation_id == ChatConversation.id)
                    .filter(ChatConversation.user_id == user_id)
                    .scalar()
                ) or 0
                last = (
                    db.session.query(func.max(ChatConversation.updated_at))
                    .filter(ChatConversation.user_id == user_id)
                    .scalar()
                )
                stats["last_conversation"] = _iso(last)
                topics = (
                    ChatMemory.query
                    .filter_by(user_id=user_id, category="topic")
                    .order_by(ChatMemory.importance.desc(), ChatMemory.id)
                    .limit(TOPIC_LIMIT)
                    .all()
                )
                stats["common_topics"] = [m.value for m in topics]
        except StoreError as exc:
            logger.info("Conversation stats unavailable for user %s: %s", user_id, exc,
                        extra={"user_id": user_id})
        return stats

    # ── Persistence ──────────────────────────────────────────────────────

    def persist(self, user_id: str, rendered: str, structured: dict, context_hash: str) -> bool:
        """Write the snapshot unless the stored hash already matches.

        Returns False (never raises) when the snapshot is too large or the
        table is not provisioned. StoreUnavailableError propagates.
        """
        size = len(rendered.encode("utf-8")) + len(json.dumps(structured).encode("utf-8"))
        if size > self.max_bytes:
            logger.warning("Context for user %s is %d bytes (limit %d), not stored",
                           user_id, size, self.max_bytes, extra={"user_id": user_id})
            return False

        try:
            with store_operation("persist user context", table="user_context_master"):
                existing = UserContextMaster.query.filter_by(user_id=user_id).first()
                if existing is not None and existing.context_hash == context_hash:
                    logger.debug("Context unchanged for user %s", user_id)
                    return True

                now = datetime.now(timezone.utc)
                if existing is None:
                    db.session.add(UserContextMaster(
                        user_id=user_id,
                        context_version=1,
                        context_yaml=rendered,
                        context_json=structured,
                        context_hash=context_hash,
                        size_bytes=size,
                        update_count=1,
                        last_updated=now,
                        created_at=now,
                    ))
                else:
                    existing.context_version = (existing.context_version or 0) + 1
                    existing.update_count = (existing.update_count or 0) + 1
                    existing.context_yaml = rendered
                    existing.context_json = structured
                    existing.context_hash = context_hash
                    existing.size_bytes = size
                    existing.last_updated = now
                db.session.commit()
        except FeatureNotProvisionedError:
            logger.info("user_context_master not provisioned, context for %s not stored", user_id)
            return False

        logger.info("Context stored for user %s", user_id, extra={"user_id": user_id})
        return True

    def update_user_context(self, user_id: str, profile: dict, modules=None) -> bool:
        snapshot = self.synthesize(user_id, profile, modules)
        return self.persist(user_id, snapshot["rendered"], snapshot["structured"], snapshot["hash"])

    def get_user_context(self, user_id: str) -> str | None:
        rows = read_or_empty(
            lambda: UserContextMaster.query.filter_by(user_id=user_id).limit(1).all(),
            table="user_context_master",
        )
        return rows[0].context_yaml if rows else None

    def get_snapshot(self, user_id: str) -> UserContextMaster | None:
        rows = read_or_empty(
            lambda: UserContextMaster.query.filter_by(user_id=user_id).limit(1).all(),
            table="user_context_master",
        )
        return rows[0] if rows else None
