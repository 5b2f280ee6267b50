"""Demo data for ``flask seed-demo``.

Creates one project with a parent bug, two blocking children, a duplicate
and a related bug. Idempotent: an existing demo project is returned as-is.
"""
import logging

from bugtracker.models.bug import Project, STATUS_CONFIRMED, STATUS_RESOLVED
from bugtracker.services import bug_lifecycle
from bugtracker.services.relationship_store import get_store
from bugtracker.services.relationship_types import RelationshipType

logger = logging.getLogger(__name__)

DEMO_PROJECT = "Demo"

_DEMO_BUGS = [
    {"summary": "Checkout fails for guest users", "reporter": "alice", "handler": "bob",
     "status": STATUS_CONFIRMED, "severity": "major"},
    {"summary": "Session cookie dropped on redirect", "reporter": "bob", "handler": "carol",
     "status": STATUS_CONFIRMED},
    {"summary": "Payment form loses address field", "reporter": "carol", "handler": "bob",
     "status": STATUS_RESOLVED, "resolution": "fixed"},
    {"summary": "Guest checkout broken", "reporter": "dave"},
    {"summary": "Checkout page slow on mobile", "reporter": "alice"},
]


def seed_demo():
    """Create the demo project (uncommitted). Returns the Project."""
    existing = Project.query.filter_by(name=DEMO_PROJECT).first()
    if existing:
        logger.info("Demo project already present id=%s", existing.id)
        return existing

    project = bug_lifecycle.create_project({
        "name": DEMO_PROJECT, "description": "Sample bugs with relationships",
    })
    parent, child_a, child_b, dup, related = (
        bug_lifecycle.create_bug(project.id, data) for data in _DEMO_BUGS
    )

    store = get_store(actor="seed")
    store.add(child_a.id, parent.id, RelationshipType.DEPENDS_ON)
    store.add(parent.id, child_b.id, RelationshipType.BLOCKED_BY)
    store.add(dup.id, parent.id, RelationshipType.DUPLICATE_OF)
    store.add(related.id, parent.id, RelationshipType.RELATED_TO)
    return project
