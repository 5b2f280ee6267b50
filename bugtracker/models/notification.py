"""
Bug Tracker
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from datetime import datetime, timezone

from bugtracker.models import db


# ── Constants ────────────────────────────────────────────────────────────────

CATEGORY_RELATIONSHIP_ADDED = "relationship_added"
CATEGORY_RELATIONSHIP_DELETED = "relationship_deleted"
CATEGORY_CHILD_RESOLVED = "child_resolved"

NOTIFICATION_CATEGORIES = {
    CATEGORY_RELATIONSHIP_ADDED,
    CATEGORY_RELATIONSHIP_DELETED,
    CATEGORY_CHILD_RESOLVED,
    "system",
}


class Notification(db.Model):
    """
    In-app notification entity.

    One record per recipient per event.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    recipient = db.Column(db.String(100), nullable=False, index=True, comment="Username")
    bug_id = db.Column(db.Integer, nullable=True, index=True, comment="Bug the event is about")
    title = db.Column(db.String(300), nullable=False)
    message = db.Column(db.Text, default="")
    category = db.Column(db.String(30), default="system")

    # Read tracking
    is_read = db.Column(db.Boolean, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def mark_read(self):
        self.is_read = True
        self.read_at = datetime.now(timezone.utc)

    def to_dict(self):
        return {
            "id": self.id,
            "recipient": self.recipient,
            "bug_id": self.bug_id,
            "title": self.title,
            "message": self.message,
            "category": self.category,
            "is_read": self.is_read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"
