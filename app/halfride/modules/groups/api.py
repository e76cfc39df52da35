from __future__ import annotations

from flask import Blueprint, jsonify

from app.halfride.auth import current_user, require_session
from app.halfride.constants import ConnectionResponseAction
from app.halfride.db import db_session
from app.halfride.modules.groups.service import (
    group_detail,
    groups_by_airport,
    get_group_or_404,
    join_request_rows,
    leave_group,
    member_rows,
    request_join_group,
    respond_to_join_request,
    update_group_name,
)
from app.halfride.utils import json_body, require_iata_code, require_int_id

bp = Blueprint("groups", __name__)


@bp.get("/groups-by-airport/<airport_code>")
@require_session
def groups_list(airport_code: str):
    s = db_session()
    code = require_iata_code(airport_code)
    return jsonify({"ok": True, "data": groups_by_airport(s, current_user(), code)})


@bp.get("/group/<group_id>")
@require_session
def group_get(group_id: str):
    s = db_session()
    return jsonify({"ok": True, "data": group_detail(s, current_user(), require_int_id(group_id, "groupId"))})


@bp.get("/group-members/<group_id>")
@require_session
def group_members(group_id: str):
    s = db_session()
    group = get_group_or_404(s, require_int_id(group_id, "groupId"))
    return jsonify({"ok": True, "data": member_rows(s, group)})


@bp.post("/leave-group")
@require_session
def group_leave():
    s = db_session()
    gid = require_int_id(json_body().get("groupId"), "groupId")
    message = leave_group(s, current_user(), gid)
    s.commit()
    return jsonify({"ok": True, "message": message})


@bp.post("/request-join-group")
@require_session
def group_request_join():
    s = db_session()
    gid = require_int_id(json_body().get("groupId"), "groupId")
    request_join_group(s, current_user(), gid)
    s.commit()
    return jsonify({"ok": True, "message": "Join request sent. Group members will be notified."})


@bp.get("/group-join-requests/<group_id>")
@require_session
def group_join_requests(group_id: str):
    s = db_session()
    rows = join_request_rows(s, current_user(), require_int_id(group_id, "groupId"))
    return jsonify({"ok": True, "data": rows})


@bp.post("/respond-to-join-request")
@require_session
def group_respond_join():
    s = db_session()
    action = respond_to_join_request(s, current_user(), json_body())
    s.commit()
    if action is ConnectionResponseAction.ACCEPT:
        return jsonify({"ok": True, "message": "Join request accepted."})
    return jsonify({"ok": True, "message": "Join request rejected."})


@bp.post("/update-group-name")
@require_session
def group_rename():
    s = db_session()
    name = update_group_name(s, current_user(), json_body())
    s.commit()
    return jsonify({"ok": True, "message": "Group name updated", "name": name})
