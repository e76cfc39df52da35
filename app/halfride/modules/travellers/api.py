from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.halfride.auth import current_user, require_session
from app.halfride.constants import ConnectionResponseAction
from app.halfride.db import db_session
from app.halfride.errors import not_found
from app.halfride.modules.groups.service import verify_at_terminal
from app.halfride.modules.travellers.service import (
    active_listing,
    complete_listing,
    listing_for_destination,
    parse_user_id,
    request_connection,
    respond_to_connection,
    revoke_listing,
    serialize_trip,
    traveller_by_airport_and_user,
    travellers_by_airport,
)
from app.halfride.utils import json_body, require_iata_code

bp = Blueprint("travellers", __name__)


@bp.get("/travellers-by-airport/<airport_code>")
@require_session
def travellers_list(airport_code: str):
    s = db_session()
    return jsonify(travellers_by_airport(s, current_user(), require_iata_code(airport_code)))


@bp.get("/traveller-by-airport/<airport_code>/<user_id>")
@require_session
def traveller_get(airport_code: str, user_id: str):
    s = db_session()
    code = require_iata_code(airport_code)
    data = traveller_by_airport_and_user(s, current_user(), code, parse_user_id(user_id))
    return jsonify({"ok": True, "data": data})


@bp.get("/check-listing")
@require_session
def check_listing():
    s = db_session()
    code = require_iata_code(request.args.get("airportCode"))
    listing = listing_for_destination(s, current_user().id, code)
    if listing is None:
        raise not_found("No listing found for this airport")
    return jsonify({"ok": True, "destinationAddress": listing.destination_address})


@bp.get("/has-active-listing")
@require_session
def has_active_listing():
    s = db_session()
    listing = active_listing(s, current_user().id)
    return jsonify(
        {
            "ok": True,
            "hasActiveListing": listing is not None,
            "airportCode": listing.flight_arrival if listing else None,
        }
    )


@bp.post("/request-connection")
@require_session
def connection_request():
    s = db_session()
    request_connection(s, current_user(), json_body())
    s.commit()
    return jsonify({"ok": True, "message": "Connection request sent"})


@bp.post("/respond-to-connection")
@require_session
def connection_respond():
    s = db_session()
    action, group = respond_to_connection(s, current_user(), json_body())
    s.commit()
    if action is ConnectionResponseAction.REJECT or group is None:
        return jsonify({"ok": True, "message": "Connection request rejected"})
    return jsonify({"ok": True, "message": "Connection request accepted", "groupId": str(group.id)})


@bp.post("/revoke-listing")
@require_session
def listing_revoke():
    s = db_session()
    code = require_iata_code(json_body().get("airportCode"))
    revoke_listing(s, current_user(), code)
    s.commit()
    return jsonify({"ok": True, "message": "Listing revoked successfully"})


@bp.post("/verify-at-terminal")
@require_session
def terminal_verify():
    s = db_session()
    data = verify_at_terminal(s, current_user(), json_body())
    s.commit()
    return jsonify({"ok": True, "message": "Verified at terminal", **data})


@bp.post("/complete-listing")
@require_session
def listing_complete():
    s = db_session()
    listing = complete_listing(s, current_user())
    s.commit()
    return jsonify({"ok": True, "message": "Listing completed", "data": serialize_trip(listing)})
