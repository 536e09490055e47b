"""
Sigma Business Automation
User context snapshot model.

UserContextMaster stores the last synthesized context per user: the YAML
rendering handed to the assistant, the structured JSON twin, and the
content hash used to skip writes when nothing changed.
"""

from datetime import datetime, timezone

from app.models import db


class UserContextMaster(db.Model):
    """Derived, hash-guarded snapshot of one user's profile and progress."""

    __tablename__ = "user_context_master"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, unique=True, index=True)
    context_version = db.Column(db.Integer, nullable=False, default=1)

    context_yaml = db.Column(db.Text, nullable=False)
    context_json = db.Column(db.JSON, nullable=False)
    context_hash = db.Column(db.String(64), nullable=True, comment="SHA-256 of context_yaml")
    size_bytes = db.Column(db.Integer, default=0)
    update_count = db.Column(db.Integer, default=0)

    last_updated = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self, include_json=False):
        d = {
            "user_id": self.user_id,
            "context_version": self.context_version,
            "context_yaml": self.context_yaml,
            "context_hash": self.context_hash,
            "size_bytes": self.size_bytes,
            "update_count": self.update_count,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }
        if include_json:
            d["context_json"] = self.context_json
        return d

    def __repr__(self):
        return f"<UserContextMaster user={self.user_id} v={self.context_version}>"
