from __future__ import annotations

from flask import Blueprint, jsonify

from app.halfride.db import db_session
from app.halfride.modules.airports.service import get_terminals, list_airports
from app.halfride.utils import json_body, require_iata_code

bp = Blueprint("airports", __name__)


@bp.get("/airports")
def airports_list():
    return jsonify({"ok": True, "data": list_airports(db_session())})


@bp.post("/airport-terminals")
def airport_terminals():
    body = json_body()
    code = require_iata_code(body.get("airportCode"), label="Airport Code")
    return jsonify({"ok": True, "data": get_terminals(db_session(), code)})
