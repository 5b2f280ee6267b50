"""Bug history service: append-only audit rows.

Transaction policy: adds rows to the session, never commits.
"""
import logging

from bugtracker.models import db
from bugtracker.models.history import (
    BugHistory, EVENT_FIELD_CHANGED, HISTORY_EVENT_TYPES,
)

logger = logging.getLogger(__name__)


class HistoryService:
    """Writes BugHistory rows for field changes and relationship events."""

    def __init__(self, default_actor=""):
        self.default_actor = default_actor

    def log_event(self, bug_id, event_kind, type_code, other_bug_id, changed_by=None):
        """Record a relationship event on ``bug_id``.

        ``type_code`` is the relationship type as seen from ``bug_id``;
        ``other_bug_id`` is the bug on the other end of the link.
        """
        if event_kind not in HISTORY_EVENT_TYPES:
            raise ValueError(f"Unknown history event: {event_kind}")
        row = BugHistory(
            bug_id=bug_id,
            event_type=event_kind,
            field_name="relationship",
            old_value=str(int(type_code)),
            new_value=str(int(other_bug_id)),
            changed_by=changed_by if changed_by is not None else self.default_actor,
        )
        db.session.add(row)
        logger.debug("History bug#%s %s type=%s other=%s", bug_id, event_kind, type_code, other_bug_id)
        return row

    def log_field_change(self, bug_id, field, old_value, new_value, changed_by=None):
        old_val = "" if old_value is None else str(old_value)
        new_val = "" if new_value is None else str(new_value)
        if old_val == new_val:
            return None
        row = BugHistory(
            bug_id=bug_id,
            event_type=EVENT_FIELD_CHANGED,
            field_name=field,
            old_value=old_val,
            new_value=new_val,
            changed_by=changed_by if changed_by is not None else self.default_actor,
        )
        db.session.add(row)
        return row

    @staticmethod
    def query_for_bug(bug_id):
        """History rows for a bug, newest first (query, for pagination)."""
        return BugHistory.query.filter_by(bug_id=bug_id).order_by(
            BugHistory.changed_at.desc(), BugHistory.id.desc(),
        )
