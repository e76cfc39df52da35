from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.halfride.auth import current_user, require_session
from app.halfride.constants import NOTIFICATIONS_DEFAULT_LIMIT, NOTIFICATIONS_MAX_LIMIT
from app.halfride.db import db_session
from app.halfride.errors import forbidden, not_found
from app.halfride.modules.notifications.models import Notification
from app.halfride.modules.notifications.service import (
    list_notifications,
    mark_all_read,
    seed_dummy_notifications,
    serialize_notification,
    unread_count,
)
from app.halfride.utils import parse_limit, require_int_id

bp = Blueprint("notifications", __name__)


@bp.get("/notifications")
@require_session
def notifications_list():
    s = db_session()
    limit = parse_limit(request.args.get("limit"), NOTIFICATIONS_DEFAULT_LIMIT, NOTIFICATIONS_MAX_LIMIT)
    unread_only = (request.args.get("unreadOnly") or "").strip().lower() in ("1", "true", "yes")
    items = list_notifications(s, current_user(), limit=limit, unread_only=unread_only)
    return jsonify({"ok": True, "data": [serialize_notification(n) for n in items]})


@bp.get("/notifications/unread-count")
@require_session
def notifications_unread_count():
    return jsonify({"ok": True, "count": unread_count(db_session(), current_user())})


# registered before /<id>/read so "read-all" is never taken for an id
@bp.patch("/notifications/read-all")
@require_session
def notifications_read_all():
    s = db_session()
    count = mark_all_read(s, current_user())
    s.commit()
    return jsonify({"ok": True, "count": count})


@bp.patch("/notifications/<notification_id>/read")
@require_session
def notifications_mark_read(notification_id: str):
    s = db_session()
    nid = require_int_id(notification_id, "Notification ID")
    n = s.get(Notification, nid)
    if not n:
        raise not_found("Notification not found")
    if n.recipient_user_id != current_user().id:
        raise forbidden("Not allowed to mark this notification as read")
    n.is_read = True
    s.commit()
    return jsonify({"ok": True})


@bp.post("/notifications/seed")
@require_session
def notifications_seed():
    if (current_app.config.get("ENV") or "").strip().lower() in ("prod", "production"):
        raise not_found("Not found")
    s = db_session()
    seeded = seed_dummy_notifications(s, current_user())
    s.commit()
    return jsonify(
        {
            "ok": True,
            "message": f"Seeded {len(seeded)} dummy notifications",
            "results": [serialize_notification(n) for n in seeded],
        }
    )
