"""
Bug Tracker
Notification Blueprint.

Endpoints:
    GET /api/v1/notifications?recipient=&unread_only=&limit=&offset=
    PUT /api/v1/notifications/<notification_id>/read
"""

import logging

from flask import Blueprint, jsonify, request

from bugtracker.blueprints import register_error_handlers
from bugtracker.services.notification import NotificationService
from bugtracker.utils.errors import E, api_error
from bugtracker.utils.helpers import db_commit_or_error, parse_bool

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    """Notifications for one recipient, newest first."""
    recipient = (request.args.get("recipient") or "").strip()
    if not recipient:
        return api_error(E.VALIDATION_REQUIRED, "recipient is required")
    limit = min(request.args.get("limit", 50, type=int), 200)
    offset = max(request.args.get("offset", 0, type=int), 0)
    items, total = NotificationService.list_for_recipient(
        recipient,
        unread_only=parse_bool(request.args.get("unread_only")),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(recipient),
    })


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["PUT"])
def mark_notification_read(notification_id):
    notif = NotificationService.mark_read(notification_id)
    if not notif:
        return api_error(E.NOT_FOUND, "Notification not found")
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(notif.to_dict())
