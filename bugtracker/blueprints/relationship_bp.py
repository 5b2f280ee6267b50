"""
Bug Tracker
Relationship Blueprint.

Endpoints:
    GET    /api/v1/relationship-types
    GET    /api/v1/bugs/<bug_id>/relationships
    GET    /api/v1/bugs/<bug_id>/relationships/summary
    POST   /api/v1/bugs/<bug_id>/relationships          (upsert)
    PUT    /api/v1/relationships/<rel_id>
    DELETE /api/v1/bugs/<bug_id>/relationships/<rel_id>
    GET    /api/v1/bugs/<bug_id>/can-resolve

The store performs no permission checks; this blueprint validates input and
refuses to modify relationships of read-only bugs before calling it.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from bugtracker.blueprints import register_error_handlers
from bugtracker.core.exceptions import UnknownRelationshipTypeError
from bugtracker.models.bug import Bug
from bugtracker.services.relationship_store import UpsertOutcome, get_store
from bugtracker.services.relationship_summary import (
    BLOCKING_WARNING, relationship_rows, summary_text,
)
from bugtracker.utils.errors import E, api_error
from bugtracker.utils.helpers import db_commit_or_error, get_or_404, parse_bool, parse_int

logger = logging.getLogger(__name__)

relationship_bp = Blueprint("relationships", __name__, url_prefix="/api/v1")
register_error_handlers(relationship_bp)


# ── Helpers ──────────────────────────────────────────────────────────────────

def _parse_type(store, value):
    """Type code from a request value; falls back to DEFAULT_BUG_RELATIONSHIP."""
    if value is None or value == "":
        value = current_app.config.get("DEFAULT_BUG_RELATIONSHIP", 1)
    return store.registry.code_for(value)


def _validate_link(store, src_bug_id, dest_bug_id, type_value):
    """Validate a (src, dest, type) request triple.

    Returns ``(type_code, None)`` or ``(None, error_response)``.
    """
    if src_bug_id is None:
        return None, api_error(E.VALIDATION_REQUIRED, "src_bug_id is required")
    if dest_bug_id is None:
        return None, api_error(E.VALIDATION_REQUIRED, "dest_bug_id is required")
    if src_bug_id == dest_bug_id:
        return None, api_error(E.VALIDATION_INVALID, "Cannot link a bug to itself")
    try:
        type_code = _parse_type(store, type_value)
    except UnknownRelationshipTypeError:
        return None, api_error(
            E.VALIDATION_INVALID, f"Unknown relationship type: {type_value!r}",
            details={"allowed": [o["name"] for o in store.registry.options()]},
        )
    for bug_id in (src_bug_id, dest_bug_id):
        _, err = get_or_404(Bug, bug_id)
        if err:
            return None, err
    if store.bugs.is_readonly(src_bug_id):
        return None, api_error(E.CONFLICT_STATE, f"Bug {src_bug_id} is read-only")
    return type_code, None


def _view_payload(store, relationship_id, bug_id):
    rel = store.get(relationship_id)
    return store.view_of(rel, bug_id).to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# TYPES
# ═════════════════════════════════════════════════════════════════════════════

@relationship_bp.route("/relationship-types", methods=["GET"])
def list_relationship_types():
    """Relationship type options, optionally with the [any] / [none] filters."""
    store = get_store()
    include_any = parse_bool(request.args.get("include_any"))
    include_none = parse_bool(request.args.get("include_none"))
    return jsonify({
        "items": store.registry.options(include_any=include_any, include_none=include_none),
        "types": [info.to_dict() for info in store.registry],
        "default": current_app.config.get("DEFAULT_BUG_RELATIONSHIP"),
    })


# ═════════════════════════════════════════════════════════════════════════════
# LISTING
# ═════════════════════════════════════════════════════════════════════════════

@relationship_bp.route("/bugs/<int:bug_id>/relationships", methods=["GET"])
def list_relationships(bug_id):
    """All relationships of a bug, each described from this bug's side."""
    _, err = get_or_404(Bug, bug_id)
    if err:
        return err
    store = get_store()
    rows, cross_project = relationship_rows(store, bug_id)
    blocking = store.blocking_bug_ids(bug_id)
    payload = {
        "bug_id": bug_id,
        "items": rows,
        "total": len(rows),
        "cross_project": cross_project,
        "can_resolve": not blocking,
        "blocking_bug_ids": blocking,
    }
    if rows and blocking:
        payload["warning"] = BLOCKING_WARNING
    return jsonify(payload)


@relationship_bp.route("/bugs/<int:bug_id>/relationships/summary", methods=["GET"])
def relationship_summary(bug_id):
    """Plain-text relationship summary (email body format)."""
    _, err = get_or_404(Bug, bug_id)
    if err:
        return err
    text = summary_text(
        get_store(), bug_id, current_app.config.get("EMAIL_SEPARATOR_WIDTH", 70),
    )
    return current_app.response_class(text, mimetype="text/plain")


@relationship_bp.route("/bugs/<int:bug_id>/can-resolve", methods=["GET"])
def can_resolve(bug_id):
    _, err = get_or_404(Bug, bug_id)
    if err:
        return err
    blocking = get_store().blocking_bug_ids(bug_id)
    return jsonify({"bug_id": bug_id, "can_resolve": not blocking, "blocking_bug_ids": blocking})


# ═════════════════════════════════════════════════════════════════════════════
# MUTATIONS
# ═════════════════════════════════════════════════════════════════════════════

@relationship_bp.route("/bugs/<int:bug_id>/relationships", methods=["POST"])
def create_relationship(bug_id):
    """Link this bug to another; re-submitting an existing link is a no-op.

    Body: {dest_bug_id, type, changed_by?}
    Returns 201 when a row was created, 200 when replaced or unchanged.
    """
    _, err = get_or_404(Bug, bug_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    dest_bug_id = parse_int(data.get("dest_bug_id"))

    store = get_store(actor=data.get("changed_by", ""))
    type_code, err = _validate_link(store, bug_id, dest_bug_id, data.get("type"))
    if err:
        return err

    result = store.upsert_result(bug_id, dest_bug_id, type_code)
    err = db_commit_or_error()
    if err:
        return err

    body = _view_payload(store, result.relationship_id, bug_id)
    body["outcome"] = result.outcome.value
    status = 201 if result.outcome is UpsertOutcome.CREATED else 200
    return jsonify(body), status


@relationship_bp.route("/relationships/<int:rel_id>", methods=["PUT"])
def update_relationship(rel_id):
    """Re-type / re-direct a relationship in place.

    Body: {src_bug_id, dest_bug_id, type, changed_by?}
    Returns 409 when another relationship already links the new pair.
    """
    data = request.get_json(silent=True) or {}
    store = get_store(actor=data.get("changed_by", ""))
    store.get(rel_id)  # 404 before validating the body

    src_bug_id = parse_int(data.get("src_bug_id"))
    dest_bug_id = parse_int(data.get("dest_bug_id"))
    type_code, err = _validate_link(store, src_bug_id, dest_bug_id, data.get("type"))
    if err:
        return err

    store.update(rel_id, src_bug_id, dest_bug_id, type_code)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(_view_payload(store, rel_id, src_bug_id)), 200


@relationship_bp.route("/bugs/<int:bug_id>/relationships/<int:rel_id>", methods=["DELETE"])
def delete_relationship(bug_id, rel_id):
    """Remove a relationship of this bug (404 when the bug is not an endpoint)."""
    _, err = get_or_404(Bug, bug_id)
    if err:
        return err
    store = get_store(actor=request.args.get("changed_by", ""))
    store.get_linked_bug_id(rel_id, bug_id)
    if store.bugs.is_readonly(bug_id):
        return api_error(E.CONFLICT_STATE, f"Bug {bug_id} is read-only")

    store.delete(rel_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"message": "Relationship deleted", "relationship_id": rel_id}), 200
