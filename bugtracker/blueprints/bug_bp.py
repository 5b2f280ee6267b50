"""
Bug Tracker
Bug Blueprint: projects, bugs, monitors, cloning and history.

Endpoints:
    POST   /api/v1/projects
    GET    /api/v1/projects/<project_id>/bugs
    POST   /api/v1/projects/<project_id>/bugs
    GET    /api/v1/bugs/<bug_id>
    PATCH  /api/v1/bugs/<bug_id>/status
    POST   /api/v1/bugs/<bug_id>/monitors
    POST   /api/v1/bugs/<bug_id>/clone
    DELETE /api/v1/bugs/<bug_id>
    GET    /api/v1/bugs/<bug_id>/history
"""

import logging

from flask import Blueprint, jsonify, request

from bugtracker.blueprints import paginate_query, register_error_handlers
from bugtracker.core.exceptions import UnknownRelationshipTypeError
from bugtracker.models.bug import Bug, BugMonitor, Project
from bugtracker.services import bug_lifecycle
from bugtracker.services.history_service import HistoryService
from bugtracker.services.relationship_store import get_store
from bugtracker.utils.errors import E, api_error
from bugtracker.utils.helpers import db_commit_or_error, get_or_404, parse_bool

logger = logging.getLogger(__name__)

bug_bp = Blueprint("bugs", __name__, url_prefix="/api/v1")
register_error_handlers(bug_bp)


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════════

@bug_bp.route("/projects", methods=["POST"])
def create_project():
    data = request.get_json(silent=True) or {}
    project = bug_lifecycle.create_project(data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(project.to_dict()), 201


@bug_bp.route("/projects/<int:project_id>/bugs", methods=["GET"])
def list_bugs(project_id):
    """List bugs of a project, newest first."""
    _, err = get_or_404(Project, project_id)
    if err:
        return err
    q = Bug.query.filter_by(project_id=project_id)
    status = request.args.get("status", type=int)
    if status is not None:
        q = q.filter_by(status=status)
    items, total = paginate_query(q.order_by(Bug.id.desc()))
    return jsonify({"items": [b.to_dict() for b in items], "total": total})


@bug_bp.route("/projects/<int:project_id>/bugs", methods=["POST"])
def create_bug(project_id):
    _, err = get_or_404(Project, project_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    if not (data.get("summary") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "summary is required")
    bug = bug_lifecycle.create_bug(project_id, data)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(bug.to_dict()), 201


# ═════════════════════════════════════════════════════════════════════════════
# BUGS
# ═════════════════════════════════════════════════════════════════════════════

@bug_bp.route("/bugs/<int:bug_id>", methods=["GET"])
def get_bug(bug_id):
    bug, err = get_or_404(Bug, bug_id)
    if err:
        return err
    d = bug.to_dict()
    d["monitors"] = [m.username for m in bug.monitors.order_by(BugMonitor.id)]
    d["is_readonly"] = get_store().bugs.is_readonly(bug_id)
    return jsonify(d)


@bug_bp.route("/bugs/<int:bug_id>/status", methods=["PATCH"])
def change_status(bug_id):
    """Change bug status.

    Body: {status, force?, changed_by?, resolution?}
    Resolving a bug with unresolved children returns 422 unless force=true.
    """
    bug, err = get_or_404(Bug, bug_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    if data.get("status") is None:
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    bug_lifecycle.change_status(
        bug,
        data["status"],
        changed_by=data.get("changed_by", ""),
        force=parse_bool(data.get("force")),
        resolution=data.get("resolution"),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(bug.to_dict()), 200


@bug_bp.route("/bugs/<int:bug_id>/monitors", methods=["POST"])
def add_monitor(bug_id):
    _, err = get_or_404(Bug, bug_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    username = (data.get("username") or "").strip()
    if not username:
        return api_error(E.VALIDATION_REQUIRED, "username is required")
    monitor = get_store().bugs.add_monitor(bug_id, username)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(monitor.to_dict()), 201


@bug_bp.route("/bugs/<int:bug_id>/clone", methods=["POST"])
def clone_bug(bug_id):
    """Clone a bug as a child of itself.

    Body: {copy_relationships?, relationship_type?, summary?, ..., changed_by?}
    """
    parent, err = get_or_404(Bug, bug_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    changed_by = data.pop("changed_by", "")
    store = get_store(actor=changed_by)

    overrides = dict(data)
    if data.get("relationship_type") is not None:
        try:
            overrides["relationship_type"] = store.registry.code_for(data["relationship_type"])
        except UnknownRelationshipTypeError:
            return api_error(
                E.VALIDATION_INVALID,
                f"Unknown relationship type: {data['relationship_type']!r}",
            )

    child = bug_lifecycle.clone_as_child(
        parent,
        overrides=overrides,
        copy_relationships=parse_bool(data.get("copy_relationships")),
        store=store,
        changed_by=changed_by,
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(child.to_dict()), 201


@bug_bp.route("/bugs/<int:bug_id>", methods=["DELETE"])
def delete_bug(bug_id):
    bug, err = get_or_404(Bug, bug_id)
    if err:
        return err
    removed = bug_lifecycle.delete_bug(bug)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Bug deleted", "relationships_removed": removed}), 200


# ═════════════════════════════════════════════════════════════════════════════
# HISTORY
# ═════════════════════════════════════════════════════════════════════════════

@bug_bp.route("/bugs/<int:bug_id>/history", methods=["GET"])
def list_history(bug_id):
    """Change audit trail for a bug, newest first."""
    _, err = get_or_404(Bug, bug_id)
    if err:
        return err
    items, total = paginate_query(HistoryService.query_for_bug(bug_id))
    return jsonify({"items": [h.to_dict() for h in items], "total": total})
