"""Bug service: the narrow bug-record interface used by RelationshipStore.

Transaction policy: methods use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit().

Operations:
- Existence / field lookup, with a bulk pre-fetch into the session identity map
- Last-modified touch
- Read-only check (status threshold)
- Notification recipients (reporter, handler, monitors)
- Monitor registration
"""
import logging
from datetime import datetime, timezone

from bugtracker.core.exceptions import ConflictError, NotFoundError
from bugtracker.models import db
from bugtracker.models.bug import Bug, BugMonitor, STATUS_RESOLVED

logger = logging.getLogger(__name__)


class BugService:
    """Bug lookups and small mutations on top of the current SQLAlchemy session."""

    def __init__(self, readonly_threshold=STATUS_RESOLVED):
        self.readonly_threshold = readonly_threshold

    # ── Lookup ────────────────────────────────────────────────────────────

    @staticmethod
    def get(bug_id):
        if bug_id is None:
            return None
        return db.session.get(Bug, int(bug_id))

    def exists(self, bug_id):
        return self.get(bug_id) is not None

    def get_or_raise(self, bug_id):
        bug = self.get(bug_id)
        if bug is None:
            raise NotFoundError(resource="Bug", resource_id=bug_id)
        return bug

    def get_field(self, bug_id, field):
        """Value of one column of a bug.

        Raises:
            NotFoundError: bug does not exist.
            AttributeError: unknown field.
        """
        bug = self.get_or_raise(bug_id)
        if field not in Bug.__table__.columns:
            raise AttributeError(f"Bug has no field {field!r}")
        return getattr(bug, field)

    def fetch_many(self, bug_ids):
        """Load many bugs with one query; returns ``{id: Bug}`` for those that exist.

        Loaded rows stay in the session identity map, so later ``get()`` calls
        for the same ids do not hit the database.
        """
        ids = {int(b) for b in bug_ids if b is not None}
        if not ids:
            return {}
        rows = Bug.query.filter(Bug.id.in_(ids)).all()
        return {b.id: b for b in rows}

    # ── Mutations ─────────────────────────────────────────────────────────

    def touch_last_modified(self, bug_id):
        """Bump ``updated_at``; silently ignores bugs that no longer exist."""
        bug = self.get(bug_id)
        if bug is None:
            return False
        bug.updated_at = datetime.now(timezone.utc)
        return True

    def is_readonly(self, bug_id):
        return self.get_field(bug_id, "status") >= self.readonly_threshold

    # ── Watchers ──────────────────────────────────────────────────────────

    def recipients(self, bug_id):
        """Users notified about a bug: reporter, handler, then monitors, deduplicated."""
        bug = self.get(bug_id)
        if bug is None:
            return []
        out = []
        for name in [bug.reporter, bug.handler, *(m.username for m in bug.monitors.order_by(BugMonitor.id))]:
            if name and name not in out:
                out.append(name)
        return out

    def add_monitor(self, bug_id, username):
        bug = self.get_or_raise(bug_id)
        username = (username or "").strip()
        if not username:
            raise ValueError("username is required")
        if BugMonitor.query.filter_by(bug_id=bug.id, username=username).first():
            raise ConflictError(resource="BugMonitor", field="username", value=username)
        monitor = BugMonitor(bug_id=bug.id, username=username)
        db.session.add(monitor)
        db.session.flush()
        logger.info("User %s now monitors bug#%s", username, bug.id)
        return monitor
