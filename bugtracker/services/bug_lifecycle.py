"""Bug lifecycle service: create, re-status, clone and delete bugs.

Transaction policy: methods use flush() for ID generation, never commit().
Caller (route handler) is responsible for db.session.commit().

Relationship side effects:
- change_status refuses to resolve a bug with unresolved blocking children
  unless forced, and notifies the parents a newly resolved child blocks.
- clone_as_child links the clone to its parent (and optionally copies the
  parent's relationships).
- delete_bug removes every relationship of the bug first.
"""
import logging

from flask import current_app

from bugtracker.core.exceptions import ConflictError, ValidationError
from bugtracker.models import db
from bugtracker.models.bug import (
    Bug, Project, BUG_RESOLUTIONS, BUG_STATUSES, STATUS_NEW, status_name,
)
from bugtracker.models.history import BugHistory
from bugtracker.services.relationship_store import get_store
from bugtracker.services.relationship_types import RelationshipType

logger = logging.getLogger(__name__)


# ── Projects ─────────────────────────────────────────────────────────────────

def create_project(data):
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    if Project.query.filter_by(name=name).first():
        raise ConflictError(resource="Project", field="name", value=name)
    project = Project(name=name, description=data.get("description", ""))
    db.session.add(project)
    db.session.flush()
    logger.info("Project created id=%s name=%s", project.id, name)
    return project


# ── Bugs ─────────────────────────────────────────────────────────────────────

def _validate_status(status):
    try:
        status = int(status)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid status: {status!r}", details={"status": "invalid"}) from None
    if status not in BUG_STATUSES:
        raise ValidationError(
            f"Invalid status: {status}. Allowed: {sorted(BUG_STATUSES)}",
            details={"status": "invalid"},
        )
    return status


def create_bug(project_id, data):
    """Create a bug in a project.

    Returns the new Bug instance (uncommitted, caller must commit).
    """
    summary = (data.get("summary") or "").strip()
    if not summary:
        raise ValidationError("summary is required", details={"summary": "required"})
    resolution = data.get("resolution", "open")
    if resolution not in BUG_RESOLUTIONS:
        raise ValidationError(f"Invalid resolution: {resolution}", details={"resolution": "invalid"})

    bug = Bug(
        project_id=project_id,
        summary=summary,
        description=data.get("description", ""),
        steps_to_reproduce=data.get("steps_to_reproduce", ""),
        status=_validate_status(data.get("status", STATUS_NEW)),
        resolution=resolution,
        severity=data.get("severity", "minor"),
        priority=data.get("priority", "normal"),
        reporter=data.get("reporter", ""),
        handler=data.get("handler", ""),
    )
    db.session.add(bug)
    db.session.flush()
    logger.info("Bug created id=%s project=%s", bug.id, project_id)
    return bug


def change_status(bug, new_status, changed_by="", force=False, resolution=None, store=None):
    """Move a bug to ``new_status``.

    Raises:
        ValidationError: unknown status, or the bug would be resolved while
            blocking children are still open and ``force`` is false.
    """
    new_status = _validate_status(new_status)
    if resolution is not None and resolution not in BUG_RESOLUTIONS:
        raise ValidationError(f"Invalid resolution: {resolution}", details={"resolution": "invalid"})
    store = store or get_store(actor=changed_by)
    threshold = store.resolved_threshold
    old_status = bug.status
    becomes_resolved = new_status >= threshold > old_status

    if becomes_resolved and not force:
        blocking = store.blocking_bug_ids(bug.id)
        if blocking:
            raise ValidationError(
                "Bug has blocking children that are not yet resolved",
                details={"blocking_bug_ids": blocking},
            )

    history = store.history
    history.log_field_change(
        bug.id, "status", status_name(old_status), status_name(new_status), changed_by,
    )
    bug.status = new_status
    if resolution is not None:
        history.log_field_change(bug.id, "resolution", bug.resolution, resolution, changed_by)
        bug.resolution = resolution

    if becomes_resolved:
        for parent_id in store.parents_of(bug.id):
            parent = store.bugs.get(parent_id)
            if parent is not None and parent.status < threshold:
                store.notifier.child_resolved(parent_id, bug.id)

    db.session.flush()
    logger.info(
        "Bug status changed id=%s %s → %s%s",
        bug.id, old_status, new_status, " (forced)" if force and becomes_resolved else "",
    )
    return bug


_CLONE_COPY_FIELDS = (
    "project_id", "summary", "description", "steps_to_reproduce",
    "severity", "priority", "reporter",
)


def clone_as_child(parent, overrides=None, copy_relationships=False, store=None, changed_by=""):
    """Clone ``parent`` into a new bug linked to it as a child.

    The new bug starts as ``new`` with no handler. When
    ``copy_relationships`` is set, the parent's relationships are copied
    first. The clone is then linked with ``DEFAULT_CLONE_RELATIONSHIP``
    (child of, by default); only the parent's watchers are notified.

    Returns the new Bug instance (uncommitted).
    """
    overrides = overrides or {}
    store = store or get_store(actor=changed_by)
    field_data = {f: getattr(parent, f) for f in _CLONE_COPY_FIELDS}
    for key in ("summary", "description", "steps_to_reproduce", "severity", "priority", "reporter", "handler"):
        if key in overrides:
            field_data[key] = overrides[key]
    field_data["status"] = STATUS_NEW
    field_data["resolution"] = "open"

    child = Bug(**field_data)
    db.session.add(child)
    db.session.flush()

    if copy_relationships:
        store.copy_all(parent.id, child.id)

    rel_type = overrides.get("relationship_type")
    if rel_type is None:
        rel_type = current_app.config.get("DEFAULT_CLONE_RELATIONSHIP", RelationshipType.DEPENDS_ON)
    store.add(child.id, parent.id, rel_type, notify_source=False)

    logger.info("Bug cloned id=%s → child id=%s", parent.id, child.id)
    return child


def delete_bug(bug, store=None):
    """Delete a bug, its relationships and its history."""
    store = store or get_store()
    bug_id = bug.id
    removed = store.delete_all(bug_id)
    BugHistory.query.filter_by(bug_id=bug_id).delete(synchronize_session=False)
    db.session.delete(bug)
    db.session.flush()
    logger.info("Bug deleted id=%s (relationships removed: %d)", bug_id, removed)
    return removed
