"""
Bug Tracker
Notification Service.

Creates and queries in-app notifications. Relationship events notify the
watchers of both bugs, each side with the relationship described from its
own viewpoint ("0000005 child of 0000010" vs "0000010 parent of 0000005").
"""

import logging

from bugtracker.core.exceptions import ValidationError
from bugtracker.models import db
from bugtracker.models.bug import format_bug_id
from bugtracker.models.notification import (
    Notification,
    CATEGORY_CHILD_RESOLVED,
    CATEGORY_RELATIONSHIP_ADDED,
    CATEGORY_RELATIONSHIP_DELETED,
    NOTIFICATION_CATEGORIES,
)
from bugtracker.services.relationship_types import Side

logger = logging.getLogger(__name__)


class NotificationService:
    """Notification fan-out for relationship and status events.

    Notification rows are added to the session but not committed; the route
    handler commits them together with the change that caused them.
    """

    def __init__(self, registry, bugs):
        self.registry = registry
        self.bugs = bugs

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def broadcast(*, title, message="", category="system", bug_id=None, recipients=None):
        """Add one notification per recipient. Returns the created instances.

        Raises:
            ValidationError: ``category`` is not a known notification category.
        """
        if category not in NOTIFICATION_CATEGORIES:
            raise ValidationError(
                f"Unknown notification category: {category!r}",
                details={"category": sorted(NOTIFICATION_CATEGORIES)},
            )
        notifications = []
        for r in recipients or []:
            notif = Notification(
                recipient=r,
                bug_id=bug_id,
                title=title,
                message=message,
                category=category,
            )
            db.session.add(notif)
            notifications.append(notif)
        return notifications

    def _notify_side(self, bug_id, other_bug_id, type_code, side, verb, category):
        if not self.bugs.exists(bug_id):
            return []
        description = self.registry.description(type_code, side)
        title = (
            f"Relationship {verb}: {format_bug_id(bug_id)} {description} "
            f"{format_bug_id(other_bug_id)}"
        )
        return self.broadcast(
            title=title,
            category=category,
            bug_id=bug_id,
            recipients=self.bugs.recipients(bug_id),
        )

    # ── Relationship events ───────────────────────────────────────────────

    def relationship_added(self, src_bug_id, dest_bug_id, type_code, notify_source=True):
        """Notify both bugs' watchers; the source side can be suppressed."""
        created = []
        if notify_source:
            created += self._notify_side(
                src_bug_id, dest_bug_id, type_code, Side.SOURCE, "added",
                CATEGORY_RELATIONSHIP_ADDED,
            )
        created += self._notify_side(
            dest_bug_id, src_bug_id, type_code, Side.DESTINATION, "added",
            CATEGORY_RELATIONSHIP_ADDED,
        )
        logger.debug("Relationship added notifications: %d", len(created))
        return created

    def relationship_deleted(self, src_bug_id, dest_bug_id, type_code):
        created = self._notify_side(
            src_bug_id, dest_bug_id, type_code, Side.SOURCE, "deleted",
            CATEGORY_RELATIONSHIP_DELETED,
        )
        created += self._notify_side(
            dest_bug_id, src_bug_id, type_code, Side.DESTINATION, "deleted",
            CATEGORY_RELATIONSHIP_DELETED,
        )
        return created

    def child_resolved(self, parent_bug_id, child_bug_id):
        """Tell the parent's watchers that one of its blocking children was resolved."""
        return self.broadcast(
            title=f"Child bug resolved: {format_bug_id(child_bug_id)}",
            message=(
                f"Bug {format_bug_id(child_bug_id)}, which blocks "
                f"{format_bug_id(parent_bug_id)}, has been resolved."
            ),
            category=CATEGORY_CHILD_RESOLVED,
            bug_id=parent_bug_id,
            recipients=self.bugs.recipients(parent_bug_id),
        )

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient, unread_only=False, limit=50, offset=0):
        """Retrieve notifications for a recipient, newest first."""
        q = Notification.query.filter_by(recipient=recipient)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient):
        return Notification.query.filter_by(recipient=recipient, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read. Returns None when it does not exist."""
        notif = db.session.get(Notification, notification_id)
        if notif:
            notif.mark_read()
        return notif
