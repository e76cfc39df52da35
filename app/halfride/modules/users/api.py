from __future__ import annotations

import io

from flask import Blueprint, jsonify, request, send_file
from sqlalchemy.exc import SQLAlchemyError

from app.halfride.auth import current_user, require_session
from app.halfride.db import db_session
from app.halfride.errors import bad_request, not_found
from app.halfride.models import User
from app.halfride.modules.travellers.service import parse_user_id
from app.halfride.modules.users.service import (
    discard_photo,
    own_profile,
    profile_by_username,
    save_profile_photo,
    update_profile,
)
from app.halfride.storage import get_storage
from app.halfride.utils import json_body

bp = Blueprint("users", __name__)


@bp.get("/user/profile")
@require_session
def profile_get():
    return jsonify({"ok": True, "user": own_profile(current_user())})


@bp.patch("/user/profile")
@require_session
def profile_update():
    s = db_session()
    user = update_profile(s, current_user(), json_body())
    s.commit()
    return jsonify({"ok": True, "user": own_profile(user)})


@bp.get("/user/profile/<username>")
@require_session
def profile_public(username: str):
    s = db_session()
    return jsonify(profile_by_username(s, current_user(), username))


@bp.post("/user/profile/photo")
@require_session
def profile_photo_upload():
    f = request.files.get("photo")
    if not f or not f.filename:
        raise bad_request("No photo file provided")
    s = db_session()
    storage = get_storage()
    user = current_user()
    old_key = save_profile_photo(s, storage, user, f.read(), f.mimetype)
    new_key = user.photo_key
    try:
        s.commit()
    except SQLAlchemyError:
        s.rollback()
        discard_photo(storage, new_key)
        raise
    discard_photo(storage, old_key)
    return jsonify({"ok": True, "photoURL": user.photo_url})


@bp.get("/user/<user_id>/photo")
def profile_photo(user_id: str):
    s = db_session()
    user = s.get(User, parse_user_id(user_id))
    if user is None or not user.photo_key:
        raise not_found("Photo not found")
    data = get_storage().read(user.photo_key)
    if data is None:
        raise not_found("Photo not found")
    return send_file(io.BytesIO(data), mimetype="image/jpeg", max_age=300)
