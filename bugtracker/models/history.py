"""
Bug Tracker
Bug history model.

Models:
    - BugHistory: append-only change trail per bug.

Field changes store the field name with old/new values. Relationship events
reuse the same columns: ``old_value`` holds the relationship type code as seen
from this bug, ``new_value`` the id of the bug on the other end.
"""

from datetime import datetime, timezone

from bugtracker.models import db


# ── Constants ────────────────────────────────────────────────────────────────

EVENT_FIELD_CHANGED = "field_changed"
EVENT_RELATIONSHIP_ADDED = "relationship_added"
EVENT_RELATIONSHIP_DELETED = "relationship_deleted"
EVENT_RELATIONSHIP_REPLACED = "relationship_replaced"

HISTORY_EVENT_TYPES = {
    EVENT_FIELD_CHANGED,
    EVENT_RELATIONSHIP_ADDED,
    EVENT_RELATIONSHIP_DELETED,
    EVENT_RELATIONSHIP_REPLACED,
}

RELATIONSHIP_EVENTS = {
    EVENT_RELATIONSHIP_ADDED,
    EVENT_RELATIONSHIP_DELETED,
    EVENT_RELATIONSHIP_REPLACED,
}


class BugHistory(db.Model):
    """
    Change audit trail for bugs.

    Written by the bug lifecycle service (field changes) and by
    RelationshipStore (link added / replaced / deleted). Rows are kept for
    bugs that no longer exist, so ``bug_id`` is not a foreign key.
    """

    __tablename__ = "bug_history"

    id = db.Column(db.Integer, primary_key=True)
    bug_id = db.Column(db.Integer, nullable=False, index=True)

    event_type = db.Column(
        db.String(30), nullable=False, default=EVENT_FIELD_CHANGED,
        comment="field_changed | relationship_added | relationship_deleted | relationship_replaced",
    )
    field_name = db.Column(db.String(50), default="", comment="Changed field name")
    old_value = db.Column(db.Text, default="", comment="Previous value / relationship type code")
    new_value = db.Column(db.Text, default="", comment="New value / other bug id")
    changed_by = db.Column(db.String(100), default="", comment="Who made the change")
    changed_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        d = {
            "id": self.id,
            "bug_id": self.bug_id,
            "event_type": self.event_type,
            "field_name": self.field_name,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
        }
        if self.event_type in RELATIONSHIP_EVENTS:
            d["relationship_type"] = int(self.old_value)
            d["other_bug_id"] = int(self.new_value)
        return d

    def __repr__(self):
        return f"<BugHistory {self.id}: bug#{self.bug_id} {self.event_type}>"
