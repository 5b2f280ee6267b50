"""
Tests: RelationshipStore.

Covers:
    - Canonical storage direction for forward / non-forward types
    - exists / same_type_exists / upsert semantics
    - delete (incl. dangling destination), delete_all, copy_all
    - Listings: ordering, project enrichment, cross-project flag, viewpoints
    - get_linked_bug_id and can_resolve scenarios
    - History and notification side effects

All test data created via ORM helpers.
The `session` autouse fixture rolls back after every test.
"""

import pytest

from bugtracker.core.exceptions import (
    ConflictError,
    RelationshipNotFoundError,
    UnknownRelationshipTypeError,
)
from bugtracker.models import db as _db
from bugtracker.models.bug import STATUS_CLOSED, STATUS_RESOLVED, format_bug_id
from bugtracker.models.history import (
    BugHistory,
    EVENT_RELATIONSHIP_ADDED,
    EVENT_RELATIONSHIP_DELETED,
    EVENT_RELATIONSHIP_REPLACED,
)
from bugtracker.models.notification import (
    CATEGORY_RELATIONSHIP_ADDED,
    CATEGORY_RELATIONSHIP_DELETED,
    Notification,
)
from bugtracker.models.relationship import BugRelationship
from bugtracker.services.relationship_store import MatchKind, UpsertOutcome
from bugtracker.services.relationship_types import RelationshipType

DEPENDS_ON = RelationshipType.DEPENDS_ON
BLOCKED_BY = RelationshipType.BLOCKED_BY
DUPLICATE_OF = RelationshipType.DUPLICATE_OF
HAS_DUPLICATE = RelationshipType.HAS_DUPLICATE
RELATED_TO = RelationshipType.RELATED_TO


# ── Helpers ───────────────────────────────────────────────────────────────────


def _row(rel_id):
    r = _db.session.get(BugRelationship, rel_id)
    return (r.source_bug_id, r.destination_bug_id, r.relationship_type)


def _history(bug_id, event=None):
    q = BugHistory.query.filter_by(bug_id=bug_id)
    if event:
        q = q.filter_by(event_type=event)
    return q.order_by(BugHistory.id).all()


def _titles(recipient):
    return [n.title for n in Notification.query.filter_by(recipient=recipient).order_by(Notification.id)]


@pytest.fixture()
def pair(make_bug):
    """(child, parent) bugs with distinct watchers."""
    child = make_bug("Child bug", reporter="bob", handler="carol")
    parent = make_bug("Parent bug", reporter="alice", monitors=["dave"])
    return child, parent


# ═════════════════════════════════════════════════════════════════════════════
# ADD / DIRECTION
# ═════════════════════════════════════════════════════════════════════════════

class TestAdd:
    def test_depends_on_stored_as_given(self, store, pair):
        child, parent = pair
        rel_id = store.add(child.id, parent.id, DEPENDS_ON)
        assert rel_id > 0
        assert _row(rel_id) == (child.id, parent.id, DEPENDS_ON)

    @pytest.mark.parametrize("code", [BLOCKED_BY, HAS_DUPLICATE])
    def test_non_forward_matches_complement_storage(self, store, make_bug, code):
        a, b = make_bug("a"), make_bug("b")
        first = store.add(a.id, b.id, code)
        second = store.add(b.id, a.id, store.registry.complementary_type(code))
        assert _row(first) == _row(second) == (b.id, a.id, store.registry.complementary_type(code))

    def test_unknown_type_raises(self, store, pair):
        child, parent = pair
        with pytest.raises(UnknownRelationshipTypeError):
            store.add(child.id, parent.id, 77)
        assert BugRelationship.query.count() == 0

    def test_history_written_on_both_bugs(self, store, pair):
        child, parent = pair
        store.add(parent.id, child.id, BLOCKED_BY)
        (p_hist,) = _history(parent.id, EVENT_RELATIONSHIP_ADDED)
        (c_hist,) = _history(child.id, EVENT_RELATIONSHIP_ADDED)
        assert (p_hist.to_dict()["relationship_type"], p_hist.to_dict()["other_bug_id"]) == (BLOCKED_BY, child.id)
        assert (c_hist.to_dict()["relationship_type"], c_hist.to_dict()["other_bug_id"]) == (DEPENDS_ON, parent.id)
        assert p_hist.changed_by == "tester"

    def test_notifies_watchers_of_both_bugs(self, store, pair):
        child, parent = pair
        store.add(child.id, parent.id, DEPENDS_ON)
        expected_child = f"Relationship added: {format_bug_id(child.id)} child of {format_bug_id(parent.id)}"
        expected_parent = f"Relationship added: {format_bug_id(parent.id)} parent of {format_bug_id(child.id)}"
        assert _titles("bob") == [expected_child]
        assert _titles("carol") == [expected_child]
        assert _titles("alice") == [expected_parent]
        assert _titles("dave") == [expected_parent]
        n = Notification.query.filter_by(recipient="alice").one()
        assert n.category == CATEGORY_RELATIONSHIP_ADDED
        assert n.bug_id == parent.id

    def test_notify_source_false_suppresses_source_side_only(self, store, pair):
        child, parent = pair
        store.add(child.id, parent.id, DEPENDS_ON, notify_source=False)
        assert _titles("bob") == []
        assert len(_titles("alice")) == 1

    def test_add_has_no_duplicate_check(self, store, pair):
        child, parent = pair
        store.add(child.id, parent.id, RELATED_TO)
        store.add(child.id, parent.id, RELATED_TO)
        assert BugRelationship.query.count() == 2


# ═════════════════════════════════════════════════════════════════════════════
# EXISTS / SAME TYPE / UPSERT
# ═════════════════════════════════════════════════════════════════════════════

class TestLookup:
    def test_exists_is_direction_agnostic(self, store, pair):
        child, parent = pair
        assert store.exists(child.id, parent.id) == 0
        rel_id = store.add(child.id, parent.id, DEPENDS_ON)
        assert store.exists(child.id, parent.id) == rel_id
        assert store.exists(parent.id, child.id) == rel_id

    def test_same_type_none(self, store, pair):
        child, parent = pair
        result = store.same_type_exists(child.id, parent.id, DEPENDS_ON)
        assert result.kind is MatchKind.NONE
        assert result.relationship_id == 0
        assert not result.found

    def test_same_type_same_direction(self, store, pair):
        child, parent = pair
        rel_id = store.add(child.id, parent.id, DEPENDS_ON)
        result = store.same_type_exists(child.id, parent.id, DEPENDS_ON)
        assert result.kind is MatchKind.SAME_TYPE
        assert result.relationship_id == rel_id

    def test_same_type_via_complement(self, store, pair):
        child, parent = pair
        store.add(child.id, parent.id, DEPENDS_ON)
        assert store.same_type_exists(parent.id, child.id, BLOCKED_BY).kind is MatchKind.SAME_TYPE

    def test_related_matches_either_direction(self, store, pair):
        child, parent = pair
        store.add(child.id, parent.id, RELATED_TO)
        assert store.same_type_exists(parent.id, child.id, RELATED_TO).kind is MatchKind.SAME_TYPE

    def test_different_type(self, store, pair):
        child, parent = pair
        rel_id = store.add(child.id, parent.id, DEPENDS_ON)
        result = store.same_type_exists(child.id, parent.id, BLOCKED_BY)
        assert result.kind is MatchKind.DIFFERENT_TYPE
        assert result.relationship_id == rel_id

    def test_get_missing_raises(self, store):
        with pytest.raises(RelationshipNotFoundError):
            store.get(12345)


class TestUpsert:
    def test_upsert_twice_keeps_single_row(self, store, pair):
        child, parent = pair
        first = store.upsert(child.id, parent.id, DEPENDS_ON)
        second = store.upsert(child.id, parent.id, DEPENDS_ON)
        assert first == second
        assert BugRelationship.query.count() == 1

    def test_upsert_outcomes(self, store, pair):
        child, parent = pair
        created = store.upsert_result(child.id, parent.id, RELATED_TO)
        unchanged = store.upsert_result(parent.id, child.id, RELATED_TO)
        replaced = store.upsert_result(child.id, parent.id, DUPLICATE_OF)
        assert created.outcome is UpsertOutcome.CREATED
        assert unchanged.outcome is UpsertOutcome.UNCHANGED
        assert replaced.outcome is UpsertOutcome.REPLACED
        assert created.relationship_id == unchanged.relationship_id == replaced.relationship_id
        assert _row(created.relationship_id) == (child.id, parent.id, DUPLICATE_OF)

    def test_replace_redirects_row(self, store, pair):
        child, parent = pair
        rel_id = store.upsert(child.id, parent.id, DEPENDS_ON)
        assert store.upsert(child.id, parent.id, BLOCKED_BY) == rel_id
        assert _row(rel_id) == (parent.id, child.id, DEPENDS_ON)

    def test_unchanged_writes_no_history(self, store, pair):
        child, parent = pair
        store.upsert(child.id, parent.id, DEPENDS_ON)
        store.upsert(parent.id, child.id, BLOCKED_BY)
        assert len(_history(child.id)) == 1


class TestUpdate:
    def test_update_logs_replaced_and_renotifies(self, store, pair):
        child, parent = pair
        rel_id = store.add(child.id, parent.id, RELATED_TO)
        store.update(rel_id, child.id, parent.id, DUPLICATE_OF)
        (c_hist,) = _history(child.id, EVENT_RELATIONSHIP_REPLACED)
        (p_hist,) = _history(parent.id, EVENT_RELATIONSHIP_REPLACED)
        assert int(c_hist.old_value) == DUPLICATE_OF
        assert int(p_hist.old_value) == HAS_DUPLICATE
        titles = _titles("alice")
        assert len(titles) == 2
        assert titles[-1].endswith(f"has duplicate {format_bug_id(child.id)}")
        assert Notification.query.filter_by(category=CATEGORY_RELATIONSHIP_ADDED).count() == 8

    def test_update_missing_raises(self, store, pair):
        child, parent = pair
        with pytest.raises(RelationshipNotFoundError):
            store.update(999, child.id, parent.id, RELATED_TO)

    def test_update_onto_linked_pair_conflicts(self, store, make_bug):
        a, b, c = make_bug("a"), make_bug("b"), make_bug("c")
        moving = store.add(a.id, b.id, RELATED_TO)
        store.add(c.id, a.id, RELATED_TO)

        with pytest.raises(ConflictError):
            store.update(moving, a.id, c.id, DUPLICATE_OF)
        assert _row(moving) == (a.id, b.id, RELATED_TO)
        assert BugRelationship.query.count() == 2

    def test_update_same_pair_keeps_row(self, store, pair):
        child, parent = pair
        rel_id = store.add(child.id, parent.id, RELATED_TO)
        store.update(rel_id, parent.id, child.id, BLOCKED_BY)
        assert _row(rel_id) == (child.id, parent.id, DEPENDS_ON)


# ═════════════════════════════════════════════════════════════════════════════
# DELETE / DELETE ALL / COPY ALL
# ═════════════════════════════════════════════════════════════════════════════

class TestDelete:
    def test_delete_removes_row_and_logs(self, store, pair):
        child, parent = pair
        rel_id = store.add(child.id, parent.id, DEPENDS_ON)
        store.delete(rel_id)
        assert _db.session.get(BugRelationship, rel_id) is None
        (c_hist,) = _history(child.id, EVENT_RELATIONSHIP_DELETED)
        (p_hist,) = _history(parent.id, EVENT_RELATIONSHIP_DELETED)
        assert int(c_hist.old_value) == DEPENDS_ON
        assert int(p_hist.old_value) == BLOCKED_BY
        assert Notification.query.filter_by(category=CATEGORY_RELATIONSHIP_DELETED).count() == 4

    def test_delete_without_notification(self, store, pair):
        child, parent = pair
        rel_id = store.add(child.id, parent.id, DEPENDS_ON)
        store.delete(rel_id, send_notification=False)
        assert Notification.query.filter_by(category=CATEGORY_RELATIONSHIP_DELETED).count() == 0

    def test_delete_missing_raises(self, store):
        with pytest.raises(RelationshipNotFoundError):
            store.delete(4242)

    def test_delete_tolerates_missing_destination(self, store, pair):
        child, parent = pair
        rel_id = store.add(child.id, parent.id, DEPENDS_ON)
        parent_id = parent.id
        _db.session.delete(parent)
        _db.session.flush()

        store.delete(rel_id)
        assert len(_history(child.id, EVENT_RELATIONSHIP_DELETED)) == 1
        assert _history(parent_id, EVENT_RELATIONSHIP_DELETED) == []


class TestDeleteAll:
    def test_delete_all_clears_both_directions(self, store, make_bug):
        a, b, c = make_bug("a"), make_bug("b"), make_bug("c")
        store.add(a.id, b.id, DEPENDS_ON)
        store.add(c.id, a.id, DUPLICATE_OF)
        store.add(b.id, c.id, RELATED_TO)

        assert store.delete_all(a.id) == 2
        rels, _ = store.get_all(a.id)
        assert rels == []
        assert all(a.id not in (r.src_bug_id, r.dest_bug_id) for r in store.get_all(b.id)[0])
        assert all(a.id not in (r.src_bug_id, r.dest_bug_id) for r in store.get_all(c.id)[0])
        assert BugRelationship.query.count() == 1

    def test_delete_all_sends_no_notifications(self, store, pair):
        child, parent = pair
        store.add(child.id, parent.id, DEPENDS_ON)
        store.delete_all(child.id)
        assert Notification.query.filter_by(category=CATEGORY_RELATIONSHIP_DELETED).count() == 0

    def test_delete_all_removes_dangling_rows(self, store, pair):
        child, parent = pair
        store.add(child.id, parent.id, DEPENDS_ON)
        _db.session.delete(parent)
        _db.session.flush()
        assert store.delete_all(child.id) == 1
        assert BugRelationship.query.count() == 0


class TestCopyAll:
    def test_copy_all_preserves_types_and_sides(self, store, make_bug):
        a, x, y, new = make_bug("a"), make_bug("x"), make_bug("y"), make_bug("new")
        store.add(a.id, x.id, DEPENDS_ON)       # a is source
        store.add(y.id, a.id, DUPLICATE_OF)     # a is destination

        new_ids = store.copy_all(a.id, new.id)
        assert len(new_ids) == 2
        copied = {_row(i) for i in new_ids}
        assert (new.id, x.id, DEPENDS_ON) in copied
        assert (y.id, new.id, DUPLICATE_OF) in copied

    def test_copy_all_notifies_only_other_side(self, store, make_bug):
        a = make_bug("a")
        x = make_bug("x", reporter="xavier")
        new = make_bug("new", reporter="nora")
        store.add(a.id, x.id, RELATED_TO, notify_source=False)
        Notification.query.delete()

        store.copy_all(a.id, new.id)
        assert _titles("nora") == []
        assert len(_titles("xavier")) == 1


# ═════════════════════════════════════════════════════════════════════════════
# LISTINGS
# ═════════════════════════════════════════════════════════════════════════════

class TestListings:
    def test_source_listing_ordered_by_type_then_id(self, store, make_bug):
        a, x, y, z = make_bug("a"), make_bug("x"), make_bug("y"), make_bug("z")
        r1 = store.add(a.id, x.id, RELATED_TO)
        r2 = store.add(a.id, y.id, DUPLICATE_OF)
        r3 = store.add(a.id, z.id, RELATED_TO)
        assert [r.id for r in store.get_all_source(a.id)] == [r2, r1, r3]

    def test_destination_listing(self, store, pair):
        child, parent = pair
        rel_id = store.add(child.id, parent.id, DEPENDS_ON)
        (rel,) = store.get_all_destination(parent.id)
        assert rel.id == rel_id
        assert store.get_all_source(parent.id) == []

    def test_enriched_with_project_ids(self, store, make_bug, project, other_project):
        a = make_bug("a")
        b = make_bug("b", project_id=other_project.id)
        store.add(a.id, b.id, RELATED_TO)
        (rel,) = store.get_all_source(a.id)
        assert (rel.src_project_id, rel.dest_project_id) == (project.id, other_project.id)
        rels, cross_project = store.get_all(a.id)
        assert len(rels) == 1
        assert cross_project is True

    def test_same_project_not_cross(self, store, pair):
        child, parent = pair
        store.add(child.id, parent.id, RELATED_TO)
        assert store.get_all(child.id)[1] is False

    def test_dangling_row_has_no_project(self, store, pair):
        child, parent = pair
        store.add(child.id, parent.id, RELATED_TO)
        _db.session.delete(parent)
        _db.session.flush()
        rels, cross_project = store.get_all(child.id)
        assert rels[0].dest_project_id is None
        assert cross_project is False

    def test_views_from_each_endpoint(self, store, pair):
        child, parent = pair
        store.add(child.id, parent.id, DEPENDS_ON)
        (from_child,), _ = store.views_for(child.id)
        (from_parent,), _ = store.views_for(parent.id)
        assert (from_child.other_bug_id, from_child.type, from_child.description) == (
            parent.id, DEPENDS_ON, "child of")
        assert (from_parent.other_bug_id, from_parent.type, from_parent.description) == (
            child.id, BLOCKED_BY, "parent of")


# ═════════════════════════════════════════════════════════════════════════════
# LINKED BUG / RESOLUTION POLICY
# ═════════════════════════════════════════════════════════════════════════════

class TestLinkedBug:
    def test_other_endpoint_from_either_side(self, store, pair):
        child, parent = pair
        rel_id = store.add(child.id, parent.id, DEPENDS_ON)
        assert store.get_linked_bug_id(rel_id, child.id) == parent.id
        assert store.get_linked_bug_id(rel_id, parent.id) == child.id

    def test_unrelated_bug_raises(self, store, pair):
        child, parent = pair
        rel_id = store.add(child.id, parent.id, DEPENDS_ON)
        with pytest.raises(RelationshipNotFoundError) as exc:
            store.get_linked_bug_id(rel_id, 999)
        assert exc.value.bug_id == 999


class TestCanResolve:
    def test_no_relationships(self, store, make_bug):
        assert store.can_resolve(make_bug("lonely").id) is True

    def test_open_child_blocks_parent(self, store, pair):
        child, parent = pair
        store.add(child.id, parent.id, DEPENDS_ON)
        assert store.can_resolve(parent.id) is False
        assert store.blocking_bug_ids(parent.id) == [child.id]
        assert store.can_resolve(child.id) is True

    @pytest.mark.parametrize("status", [STATUS_RESOLVED, STATUS_CLOSED])
    def test_resolved_child_unblocks(self, store, pair, status):
        child, parent = pair
        store.add(child.id, parent.id, DEPENDS_ON)
        child.status = status
        _db.session.flush()
        assert store.can_resolve(parent.id) is True

    def test_link_added_from_parent_side_blocks(self, store, pair):
        child, parent = pair
        store.add(parent.id, child.id, BLOCKED_BY)
        assert store.can_resolve(parent.id) is False

    def test_other_types_do_not_block(self, store, pair):
        child, parent = pair
        store.add(child.id, parent.id, DUPLICATE_OF)
        assert store.can_resolve(parent.id) is True

    def test_parents_of(self, store, make_bug):
        child, p1, p2 = make_bug("c"), make_bug("p1"), make_bug("p2")
        store.add(child.id, p1.id, DEPENDS_ON)
        store.add(p2.id, child.id, BLOCKED_BY)
        assert store.parents_of(child.id) == [p1.id, p2.id]
