from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from app.halfride.auth import current_user, require_session
from app.halfride.db import db_session
from app.halfride.modules.flights.service import create_listing, get_flight_tracker, public_flight_status
from app.halfride.modules.notifications.service import notify_users_near_new_listing
from app.halfride.utils import json_body

bp = Blueprint("flights", __name__)
logger = logging.getLogger(__name__)


@bp.post("/new-flight-tracker")
@require_session
def new_flight_tracker():
    s = db_session()
    flight, listing, created = create_listing(s, current_user(), json_body())
    if created:
        notified = notify_users_near_new_listing(s, listing)
        if notified:
            logger.info("Listing %s: notified %s nearby travellers", listing.id, notified)
    s.commit()
    return (
        jsonify(
            {
                "ok": True,
                "message": "Flight tracking initialized",
                "flightId": flight.flight_key,
                "travellerId": str(listing.id),
            }
        ),
        201,
    )


@bp.put("/flight-tracker")
@require_session
def flight_tracker():
    s = db_session()
    data = get_flight_tracker(s, json_body())
    s.commit()
    return jsonify({"ok": True, "valid": True, "data": data})


@bp.get("/public/flight-status")
def flight_status():
    data = public_flight_status(request.args.get("flightNumber") or "", request.args.get("date") or "")
    return jsonify({"ok": True, "data": data})
