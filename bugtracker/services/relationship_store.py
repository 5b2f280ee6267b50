"""Relationship store: link, unlink and query bug relationships.

Transaction policy: methods use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit(). Multi-step
operations (upsert, copy_all, delete_all) therefore commit or roll back as
one unit with the rest of the request.

Every mutating call takes a (src, dest, type) triple in the caller's
direction. Types whose forward flag is false are rewritten to
(dest, src, complementary(type)) before storage, so each link is stored
exactly once in its canonical direction. History entries and notifications
are written in the caller's direction.

Preconditions: the core performs no permission checks. Callers must check
access (and read-only state) before add / update / delete.

Operations:
- add / update / upsert / delete / delete_all / copy_all
- get / exists / same_type_exists / get_linked_bug_id
- get_all_source / get_all_destination / get_all / views_for
- can_resolve / blocking_bug_ids / parents_of
"""
import enum
import logging
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import and_, or_

from bugtracker.core.exceptions import ConflictError, RelationshipNotFoundError
from bugtracker.models import db
from bugtracker.models.bug import STATUS_RESOLVED
from bugtracker.models.history import (
    EVENT_RELATIONSHIP_ADDED,
    EVENT_RELATIONSHIP_DELETED,
    EVENT_RELATIONSHIP_REPLACED,
)
from bugtracker.models.relationship import BugRelationship, RelationshipData, RelationshipView
from bugtracker.services.bug_service import BugService
from bugtracker.services.history_service import HistoryService
from bugtracker.services.notification import NotificationService
from bugtracker.services.relationship_types import RelationshipType, Side

logger = logging.getLogger(__name__)


def _pair_filter(bug_a, bug_b):
    """Rows linking the unordered pair in either stored direction."""
    return or_(
        and_(BugRelationship.source_bug_id == bug_a,
             BugRelationship.destination_bug_id == bug_b),
        and_(BugRelationship.source_bug_id == bug_b,
             BugRelationship.destination_bug_id == bug_a),
    )


# ── Result types ─────────────────────────────────────────────────────────────

class MatchKind(enum.Enum):
    NONE = "none"
    SAME_TYPE = "same_type"
    DIFFERENT_TYPE = "different_type"


@dataclass(frozen=True)
class SameTypeResult:
    """Outcome of ``same_type_exists``.

    ``relationship_id`` is 0 when ``kind`` is NONE, otherwise the id of the
    row connecting the pair.
    """

    kind: MatchKind
    relationship_id: int = 0

    @property
    def found(self):
        return self.kind is not MatchKind.NONE


class UpsertOutcome(str, enum.Enum):
    CREATED = "created"
    REPLACED = "replaced"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class UpsertResult:
    relationship_id: int
    outcome: UpsertOutcome


# ═════════════════════════════════════════════════════════════════════════════
# STORE
# ═════════════════════════════════════════════════════════════════════════════

class RelationshipStore:
    """Mapping layer over the ``bug_relationship`` table.

    Args:
        registry: RelationshipTypeRegistry used for direction and descriptions.
        bugs: BugService (existence, status, last-modified touch).
        history: HistoryService receiving added / replaced / deleted events.
        notifier: NotificationService for added / deleted notifications.
        resolved_threshold: status at or above which a bug counts as resolved.
    """

    def __init__(self, registry, bugs, history, notifier,
                 resolved_threshold=STATUS_RESOLVED):
        self.registry = registry
        self.bugs = bugs
        self.history = history
        self.notifier = notifier
        self.resolved_threshold = resolved_threshold

    # ── Mutations ─────────────────────────────────────────────────────────

    def add(self, src_bug_id, dest_bug_id, type_code, notify_source=True):
        """Insert a relationship and return its id.

        No duplicate check: use ``upsert`` (or ``same_type_exists``) when the
        pair may already be linked.
        """
        src_bug_id, dest_bug_id = int(src_bug_id), int(dest_bug_id)
        stored = self.registry.normalize(src_bug_id, dest_bug_id, type_code)
        row = BugRelationship(
            source_bug_id=stored.src_bug_id,
            destination_bug_id=stored.dest_bug_id,
            relationship_type=stored.type,
        )
        db.session.add(row)
        db.session.flush()

        self._log_both(EVENT_RELATIONSHIP_ADDED, src_bug_id, dest_bug_id, type_code)
        self.bugs.touch_last_modified(src_bug_id)
        self.bugs.touch_last_modified(dest_bug_id)
        self.notifier.relationship_added(src_bug_id, dest_bug_id, type_code, notify_source)

        logger.info(
            "Relationship added id=%s #%s -[%s]-> #%s",
            row.id, stored.src_bug_id, stored.type, stored.dest_bug_id,
            extra={"relationship_id": row.id, "bug_id": stored.src_bug_id},
        )
        return row.id

    def update(self, relationship_id, src_bug_id, dest_bug_id, type_code, notify_source=True):
        """Re-type / re-direct an existing relationship in place.

        Watchers receive the same "added" notification as for ``add``.

        Raises:
            RelationshipNotFoundError: ``relationship_id`` does not exist.
            ConflictError: another relationship already links the new pair.
        """
        row = self._get_row(relationship_id)
        src_bug_id, dest_bug_id = int(src_bug_id), int(dest_bug_id)
        other = (
            BugRelationship.query
            .filter(_pair_filter(src_bug_id, dest_bug_id), BugRelationship.id != row.id)
            .first()
        )
        if other is not None:
            raise ConflictError(
                resource="Relationship", field="bugs", value=f"{src_bug_id}-{dest_bug_id}",
            )
        stored = self.registry.normalize(src_bug_id, dest_bug_id, type_code)
        row.source_bug_id = stored.src_bug_id
        row.destination_bug_id = stored.dest_bug_id
        row.relationship_type = stored.type
        db.session.flush()

        self._log_both(EVENT_RELATIONSHIP_REPLACED, src_bug_id, dest_bug_id, type_code)
        self.bugs.touch_last_modified(src_bug_id)
        self.bugs.touch_last_modified(dest_bug_id)
        self.notifier.relationship_added(src_bug_id, dest_bug_id, type_code, notify_source)

        logger.info(
            "Relationship updated id=%s #%s -[%s]-> #%s",
            row.id, stored.src_bug_id, stored.type, stored.dest_bug_id,
            extra={"relationship_id": row.id, "bug_id": stored.src_bug_id},
        )
        return row.id

    def upsert_result(self, src_bug_id, dest_bug_id, type_code, notify_source=True):
        """Add, replace or keep the link between a pair; reports which happened."""
        match = self.same_type_exists(src_bug_id, dest_bug_id, type_code)
        if match.kind is MatchKind.DIFFERENT_TYPE:
            rel_id = self.update(
                match.relationship_id, src_bug_id, dest_bug_id, type_code, notify_source,
            )
            return UpsertResult(rel_id, UpsertOutcome.REPLACED)
        if match.kind is MatchKind.SAME_TYPE:
            return UpsertResult(match.relationship_id, UpsertOutcome.UNCHANGED)
        rel_id = self.add(src_bug_id, dest_bug_id, type_code, notify_source)
        return UpsertResult(rel_id, UpsertOutcome.CREATED)

    def upsert(self, src_bug_id, dest_bug_id, type_code, notify_source=True):
        """Like ``upsert_result`` but returns only the relationship id."""
        return self.upsert_result(src_bug_id, dest_bug_id, type_code, notify_source).relationship_id

    def delete(self, relationship_id, send_notification=True):
        """Delete a relationship.

        History is always written on the source bug, and on the destination
        bug only if it still exists.

        Raises:
            RelationshipNotFoundError: ``relationship_id`` does not exist.
        """
        row = self._get_row(relationship_id)
        src_bug_id = row.source_bug_id
        dest_bug_id = row.destination_bug_id
        type_code = row.relationship_type

        db.session.delete(row)
        db.session.flush()

        self.bugs.touch_last_modified(src_bug_id)
        self.bugs.touch_last_modified(dest_bug_id)

        self.history.log_event(src_bug_id, EVENT_RELATIONSHIP_DELETED, type_code, dest_bug_id)
        if self.bugs.exists(dest_bug_id):
            self.history.log_event(
                dest_bug_id, EVENT_RELATIONSHIP_DELETED,
                self.registry.complementary_type(type_code), src_bug_id,
            )

        if send_notification:
            self.notifier.relationship_deleted(src_bug_id, dest_bug_id, type_code)

        logger.info("Relationship deleted id=%s", relationship_id,
                    extra={"relationship_id": relationship_id})

    def delete_all(self, bug_id):
        """Delete every relationship touching ``bug_id`` without notifications.

        Returns the number of rows removed.
        """
        rows, _ = self.get_all(bug_id)
        seen = set()
        for rel in rows:
            if rel.id in seen:
                continue
            seen.add(rel.id)
            self.delete(rel.id, send_notification=False)
        return len(seen)

    def copy_all(self, from_bug_id, to_bug_id):
        """Re-create every relationship of ``from_bug_id`` on ``to_bug_id``.

        Only the watchers of the other endpoint are notified. Returns the new
        relationship ids.
        """
        new_ids = []
        for rel in self.get_all_source(from_bug_id):
            new_ids.append(self.add(to_bug_id, rel.dest_bug_id, rel.type, notify_source=False))
        for rel in self.get_all_destination(from_bug_id):
            new_ids.append(self.add(
                to_bug_id, rel.src_bug_id,
                self.registry.complementary_type(rel.type),
                notify_source=False,
            ))
        logger.info("Copied %d relationship(s) from bug#%s to bug#%s", len(new_ids), from_bug_id, to_bug_id)
        return new_ids

    # ── Point lookups ─────────────────────────────────────────────────────

    def _get_row(self, relationship_id):
        row = db.session.get(BugRelationship, int(relationship_id))
        if row is None:
            raise RelationshipNotFoundError(relationship_id)
        return row

    def get(self, relationship_id):
        """Stored relationship in canonical direction, with endpoint project ids."""
        return self._enrich([self._get_row(relationship_id)])[0]

    def exists(self, bug_a, bug_b):
        """Id of any relationship between the unordered pair, or 0."""
        bug_a, bug_b = int(bug_a), int(bug_b)
        row = (
            BugRelationship.query
            .filter(_pair_filter(bug_a, bug_b))
            .order_by(BugRelationship.id)
            .first()
        )
        return row.id if row else 0

    def same_type_exists(self, src_bug_id, dest_bug_id, type_code):
        """Classify the existing link between a pair against ``type_code``.

        The stored row is viewed from ``src_bug_id``: when ``src_bug_id`` is
        the stored destination, the complementary type is compared, so a
        caller asking for (parent, child, BLOCKED_BY) matches a stored
        (child, parent, DEPENDS_ON).
        """
        rel_id = self.exists(src_bug_id, dest_bug_id)
        if not rel_id:
            return SameTypeResult(MatchKind.NONE)
        row = self._get_row(rel_id)
        if row.source_bug_id == int(src_bug_id):
            seen_type = row.relationship_type
        else:
            seen_type = self.registry.complementary_type(row.relationship_type)
        if seen_type == int(type_code):
            return SameTypeResult(MatchKind.SAME_TYPE, rel_id)
        return SameTypeResult(MatchKind.DIFFERENT_TYPE, rel_id)

    def get_linked_bug_id(self, relationship_id, bug_id):
        """The other endpoint of a relationship.

        Raises:
            RelationshipNotFoundError: no such row, or ``bug_id`` is neither endpoint.
        """
        row = self._get_row(relationship_id)
        bug_id = int(bug_id)
        if row.source_bug_id == bug_id:
            return row.destination_bug_id
        if row.destination_bug_id == bug_id:
            return row.source_bug_id
        raise RelationshipNotFoundError(relationship_id, bug_id=bug_id)

    # ── Listings ──────────────────────────────────────────────────────────

    def _enrich(self, rows):
        bug_ids = {r.source_bug_id for r in rows} | {r.destination_bug_id for r in rows}
        bugs = self.bugs.fetch_many(bug_ids)

        def project_of(bug_id):
            bug = bugs.get(bug_id)
            return bug.project_id if bug else None

        return [
            RelationshipData.from_row(
                r, project_of(r.source_bug_id), project_of(r.destination_bug_id),
            )
            for r in rows
        ]

    def get_all_source(self, bug_id):
        """Relationships stored with ``bug_id`` as source, ordered by (type, id)."""
        rows = (
            BugRelationship.query
            .filter_by(source_bug_id=int(bug_id))
            .order_by(BugRelationship.relationship_type, BugRelationship.id)
            .all()
        )
        return self._enrich(rows)

    def get_all_destination(self, bug_id):
        """Relationships stored with ``bug_id`` as destination, ordered by (type, id)."""
        rows = (
            BugRelationship.query
            .filter_by(destination_bug_id=int(bug_id))
            .order_by(BugRelationship.relationship_type, BugRelationship.id)
            .all()
        )
        return self._enrich(rows)

    def get_all(self, bug_id):
        """``(relationships, cross_project)`` for every link touching ``bug_id``."""
        rels = self.get_all_source(bug_id) + self.get_all_destination(bug_id)
        return rels, any(r.crosses_projects for r in rels)

    def view_of(self, rel, bug_id):
        """Describe ``rel`` from the endpoint ``bug_id``."""
        if rel.src_bug_id == bug_id:
            return RelationshipView(
                relationship_id=rel.id,
                bug_id=bug_id,
                other_bug_id=rel.dest_bug_id,
                type=rel.type,
                description=self.registry.description(rel.type, Side.SOURCE),
                other_project_id=rel.dest_project_id,
            )
        return RelationshipView(
            relationship_id=rel.id,
            bug_id=bug_id,
            other_bug_id=rel.src_bug_id,
            type=self.registry.complementary_type(rel.type),
            description=self.registry.description(rel.type, Side.DESTINATION),
            other_project_id=rel.src_project_id,
        )

    def views_for(self, bug_id):
        """``(views, cross_project)``: every link as seen from ``bug_id``."""
        bug_id = int(bug_id)
        rels, cross_project = self.get_all(bug_id)
        return [self.view_of(r, bug_id) for r in rels], cross_project

    # ── Resolution policy ─────────────────────────────────────────────────

    def blocking_bug_ids(self, bug_id):
        """Unresolved children that block ``bug_id`` (stored as child → parent DEPENDS_ON)."""
        rows = (
            BugRelationship.query
            .filter_by(destination_bug_id=int(bug_id), relationship_type=int(RelationshipType.DEPENDS_ON))
            .order_by(BugRelationship.id)
            .all()
        )
        children = self.bugs.fetch_many(r.source_bug_id for r in rows)
        return [
            r.source_bug_id for r in rows
            if r.source_bug_id in children
            and children[r.source_bug_id].status < self.resolved_threshold
        ]

    def can_resolve(self, bug_id):
        """False while any child blocking ``bug_id`` is below the resolved threshold.

        Advisory only: callers may still force the resolution.
        """
        return not self.blocking_bug_ids(bug_id)

    def parents_of(self, child_bug_id):
        """Bugs that ``child_bug_id`` blocks."""
        rows = (
            BugRelationship.query
            .filter_by(source_bug_id=int(child_bug_id), relationship_type=int(RelationshipType.DEPENDS_ON))
            .order_by(BugRelationship.id)
            .all()
        )
        return [r.destination_bug_id for r in rows]

    # ── Internals ─────────────────────────────────────────────────────────

    def _log_both(self, event, src_bug_id, dest_bug_id, type_code):
        self.history.log_event(src_bug_id, event, type_code, dest_bug_id)
        self.history.log_event(
            dest_bug_id, event, self.registry.complementary_type(type_code), src_bug_id,
        )


def get_store(app=None, actor=""):
    """Build a RelationshipStore wired to the application's registry and config.

    ``actor`` is recorded as ``changed_by`` on the history rows it writes.
    """
    app = app or current_app
    cfg = app.config
    registry = app.extensions["relationship_types"]
    bugs = BugService(readonly_threshold=cfg.get("BUG_READONLY_STATUS_THRESHOLD", STATUS_RESOLVED))
    return RelationshipStore(
        registry=registry,
        bugs=bugs,
        history=HistoryService(default_actor=actor),
        notifier=NotificationService(registry, bugs),
        resolved_threshold=cfg.get("BUG_RESOLVED_STATUS_THRESHOLD", STATUS_RESOLVED),
    )
