from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.halfride.auth import current_user, require_session
from app.halfride.constants import MESSAGES_DEFAULT_LIMIT, MESSAGES_MAX_LIMIT
from app.halfride.db import db_session
from app.halfride.modules.chat.service import delete_message, list_messages, send_message, serialize_message
from app.halfride.utils import json_body, parse_limit, require_int_id

bp = Blueprint("chat", __name__)


def _optional_id(name: str) -> int | None:
    raw = (request.args.get(name) or "").strip()
    return require_int_id(raw, name) if raw else None


@bp.post("/groups/<group_id>/messages")
@require_session
def messages_send(group_id: str):
    s = db_session()
    gid = require_int_id(group_id, "groupId")
    m = send_message(s, current_user(), gid, json_body().get("text"))
    s.commit()
    return jsonify({"ok": True, "data": serialize_message(m)}), 201


@bp.get("/groups/<group_id>/messages")
@require_session
def messages_list(group_id: str):
    s = db_session()
    gid = require_int_id(group_id, "groupId")
    limit = parse_limit(request.args.get("limit"), MESSAGES_DEFAULT_LIMIT, MESSAGES_MAX_LIMIT)
    rows, has_more = list_messages(
        s, current_user(), gid, limit=limit, before=_optional_id("before"), after=_optional_id("after")
    )
    return jsonify({"ok": True, "data": [serialize_message(m) for m in rows], "hasMore": has_more})


@bp.delete("/groups/<group_id>/messages/<message_id>")
@require_session
def messages_delete(group_id: str, message_id: str):
    s = db_session()
    m = delete_message(s, current_user(), require_int_id(group_id, "groupId"), require_int_id(message_id, "messageId"))
    s.commit()
    return jsonify({"ok": True, "data": serialize_message(m)})
