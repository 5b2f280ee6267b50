"""
Tests: BugService, HistoryService and NotificationService helpers.
"""

import pytest

from bugtracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from bugtracker.models.bug import STATUS_ASSIGNED, STATUS_CLOSED, STATUS_RESOLVED
from bugtracker.models.history import EVENT_RELATIONSHIP_ADDED
from bugtracker.models.notification import Notification
from bugtracker.services.bug_service import BugService
from bugtracker.services.history_service import HistoryService
from bugtracker.services.notification import NotificationService


class TestBugService:
    def test_get_field(self, make_bug):
        bug = make_bug("bug", status=STATUS_ASSIGNED)
        svc = BugService()
        assert svc.get_field(bug.id, "status") == STATUS_ASSIGNED
        with pytest.raises(AttributeError):
            svc.get_field(bug.id, "nonexistent")
        with pytest.raises(NotFoundError):
            svc.get_field(9999, "status")

    def test_fetch_many_skips_missing(self, make_bug):
        a, b = make_bug("a"), make_bug("b")
        found = BugService().fetch_many([a.id, b.id, 9999, None])
        assert set(found) == {a.id, b.id}

    def test_touch_missing_bug(self):
        assert BugService().touch_last_modified(9999) is False

    @pytest.mark.parametrize("status,expected", [
        (STATUS_ASSIGNED, False), (STATUS_RESOLVED, True), (STATUS_CLOSED, True),
    ])
    def test_readonly_threshold(self, make_bug, status, expected):
        assert BugService().is_readonly(make_bug("bug", status=status).id) is expected

    def test_custom_readonly_threshold(self, make_bug):
        bug = make_bug("bug", status=STATUS_RESOLVED)
        assert BugService(readonly_threshold=STATUS_CLOSED).is_readonly(bug.id) is False

    def test_recipients_deduplicated(self, make_bug):
        bug = make_bug("bug", reporter="alice", handler="alice", monitors=["bob", "alice"])
        assert BugService().recipients(bug.id) == ["alice", "bob"]

    def test_add_monitor(self, make_bug):
        bug = make_bug("bug")
        svc = BugService()
        svc.add_monitor(bug.id, " carol ")
        assert svc.recipients(bug.id) == ["carol"]
        with pytest.raises(ConflictError):
            svc.add_monitor(bug.id, "carol")
        with pytest.raises(ValueError):
            svc.add_monitor(bug.id, "")


class TestHistoryService:
    def test_log_event(self, make_bug):
        bug = make_bug("bug")
        row = HistoryService(default_actor="system").log_event(bug.id, EVENT_RELATIONSHIP_ADDED, 2, 7)
        assert (row.old_value, row.new_value, row.changed_by) == ("2", "7", "system")

    def test_unknown_event(self, make_bug):
        with pytest.raises(ValueError):
            HistoryService().log_event(make_bug("bug").id, "renamed", 1, 2)

    def test_unchanged_field_not_logged(self, make_bug):
        assert HistoryService().log_field_change(make_bug("bug").id, "status", "new", "new") is None


class TestNotificationService:
    def test_skips_missing_bug(self, app, make_bug):
        bugs = BugService()
        svc = NotificationService(app.extensions["relationship_types"], bugs)
        a = make_bug("a", reporter="alice")
        created = svc.relationship_added(a.id, 9999, 1)
        assert [n.recipient for n in created] == ["alice"]

    def test_list_and_mark_read(self):
        NotificationService.broadcast(title="t1", recipients=["alice"])
        NotificationService.broadcast(title="t2", recipients=["alice", "bob"])
        items, total = NotificationService.list_for_recipient("alice")
        assert total == 2
        NotificationService.mark_read(items[0].id)
        assert NotificationService.unread_count("alice") == 1
        assert NotificationService.mark_read(12345) is None
        assert Notification.query.count() == 3

    def test_broadcast_rejects_unknown_category(self):
        with pytest.raises(ValidationError) as exc:
            NotificationService.broadcast(title="t", category="marketing", recipients=["alice"])
        assert "system" in exc.value.details["category"]
        assert Notification.query.count() == 0
