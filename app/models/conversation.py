"""
Sigma Business Automation
Conversation store models.

The chat feature owns these tables; the context engine only reads them for
message counts, recent topics and the last conversation timestamp.

Models:
    - ChatConversation: one assistant thread per user
    - ChatMessage: individual message within a thread
    - ChatMemory: key/value facts extracted from conversations (topic, goal, ...)
"""

from datetime import datetime, timezone

from app.models import db

CONVERSATION_STATUSES = {"active", "archived"}
MEMORY_CATEGORIES = {"topic", "preference", "goal", "fact"}


class ChatConversation(db.Model):
    """Multi-turn assistant conversation."""

    __tablename__ = "chat_conversations"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    title = db.Column(db.String(300), default="")
    status = db.Column(db.String(20), default="active")

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                           onupdate=lambda: datetime.now(timezone.utc))
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)

    messages = db.relationship("ChatMessage", backref="conversation",
                               cascade="all, delete-orphan", lazy="dynamic")

    def __repr__(self):
        return f"<ChatConversation {self.id} user={self.user_id}>"


class ChatMessage(db.Model):
    """Individual message within a conversation."""

    __tablename__ = "chat_messages"

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey("chat_conversations.id", ondelete="CASCADE"),
                                nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, comment="user | assistant | system")
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        db.CheckConstraint("role IN ('user','assistant','system')", name="ck_chat_msg_role"),
    )


class ChatMemory(db.Model):
    """Extracted conversation memory (written by the chat feature)."""

    __tablename__ = "chat_memory"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    category = db.Column(db.String(30), nullable=False, default="fact")
    key = db.Column(db.String(120), nullable=False)
    value = db.Column(db.Text, nullable=False)
    importance = db.Column(db.Integer, default=5)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
