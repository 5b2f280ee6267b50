"""
Shared pytest fixtures for the Bug Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project / other_project: Pre-created Project entities
    - make_bug: factory creating Bug rows via the ORM
    - store: RelationshipStore wired to the test app
"""

import pytest

from bugtracker import create_app
from bugtracker.models import db as _db
from bugtracker.models.bug import Bug, BugMonitor, Project, STATUS_NEW
from bugtracker.services.relationship_store import get_store


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project():
    p = Project(name="Main")
    _db.session.add(p)
    _db.session.flush()
    return p


@pytest.fixture()
def other_project():
    p = Project(name="Other")
    _db.session.add(p)
    _db.session.flush()
    return p


@pytest.fixture()
def make_bug(project):
    """Factory: make_bug(summary=..., status=..., project_id=..., monitors=[...])."""

    def _make(summary="A bug", status=STATUS_NEW, project_id=None, monitors=(), **fields):
        bug = Bug(
            project_id=project_id or project.id,
            summary=summary,
            status=status,
            **fields,
        )
        _db.session.add(bug)
        _db.session.flush()
        for username in monitors:
            _db.session.add(BugMonitor(bug_id=bug.id, username=username))
        _db.session.flush()
        return bug

    return _make


@pytest.fixture()
def store(app):
    return get_store(actor="tester")
