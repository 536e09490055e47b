"""
Sigma Business Automation
Module lifecycle models.

Models:
    - ModuleActivation: one row per (user, module) — status, progress,
      merged metadata bag, produced outputs, activity timestamps
    - SubModuleCompletion: one row per (user, sub-module) — upserted on
      repeat completion, never duplicated
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

MODULE_STATUSES = {"inactive", "active", "paused", "completed"}

# Legal manual transitions; "completed" is only reached through progress == 100
# and "active" re-entry from "completed" is the explicit restart path.
MODULE_TRANSITIONS = {
    "pause": {"from": {"active"}, "to": "paused"},
    "resume": {"from": {"paused"}, "to": "active"},
}


def _utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _iso(value):
    return as_utc(value).isoformat() if value else None


# ── ModuleActivation ─────────────────────────────────────────────────────────

class ModuleActivation(db.Model):
    """
    Per-user activation record for a catalog module.

    Invariants kept by the lifecycle service:
        progress == 100  <=>  status == "completed"
        completed_at is set on the transition into "completed"
        last_activity never moves backwards
    """

    __tablename__ = "module_activations"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    module_id = db.Column(db.String(20), nullable=False, comment="Catalog key, e.g. MOD_201")
    module_name = db.Column(db.String(120), nullable=False, default="")

    status = db.Column(db.String(20), nullable=False, default="active")
    progress = db.Column(db.Integer, nullable=False, default=0)

    meta = db.Column("metadata", db.JSON, default=dict, comment="Merged on update, never replaced")
    outputs = db.Column(db.JSON, default=dict, comment="Module-produced artifacts")

    activated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_activity = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "module_id", name="uq_module_activation_user_module"),
        db.CheckConstraint(
            "status IN ('inactive','active','paused','completed')",
            name="ck_module_activation_status",
        ),
        db.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_module_activation_progress"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "module_id": self.module_id,
            "module_name": self.module_name,
            "status": self.status,
            "progress": self.progress,
            "metadata": dict(self.meta or {}),
            "outputs": dict(self.outputs or {}),
            "activated_at": _iso(self.activated_at),
            "completed_at": _iso(self.completed_at),
            "last_activity": _iso(self.last_activity),
        }

    def __repr__(self):
        return f"<ModuleActivation user={self.user_id} module={self.module_id} status={self.status}>"


# ── SubModuleCompletion ──────────────────────────────────────────────────────

class SubModuleCompletion(db.Model):
    """Checkpoint inside a module. Unique per (user, sub-module)."""

    __tablename__ = "sub_module_completions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    module_id = db.Column(db.String(20), nullable=False)
    sub_module_id = db.Column(db.String(30), nullable=False)
    data = db.Column(db.JSON, default=dict)
    completed_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "sub_module_id", name="uq_sub_module_completion_user_sub"),
        db.Index("ix_sub_module_completions_user_module", "user_id", "module_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "module_id": self.module_id,
            "sub_module_id": self.sub_module_id,
            "data": dict(self.data or {}),
            "completed_at": _iso(self.completed_at),
        }

    def __repr__(self):
        return f"<SubModuleCompletion user={self.user_id} sub={self.sub_module_id}>"
