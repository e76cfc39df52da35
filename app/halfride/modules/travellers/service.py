from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.halfride.audit import record_event
from app.halfride.constants import (
    USER_ID_MAX_LENGTH,
    ConnectionResponseAction,
    ConnectionStatus,
    parse_connection_response_action,
)
from app.halfride.errors import bad_request, not_found
from app.halfride.maps_client import MapsError, get_maps_client
from app.halfride.models import User
from app.halfride.modules.notifications.service import (
    notify_connection_accepted,
    notify_connection_rejected,
    notify_connection_request,
)
from app.halfride.modules.travellers.models import ConnectionRequest, TravellerListing
from app.halfride.utils import MAX_DB_ID, clean_str, isoformat

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.halfride.modules.groups.models import Group

logger = logging.getLogger(__name__)


# ---------- Lookups ----------
def active_listing(
    s: "Session", user_id: int, airport_code: str | None = None, *, ungrouped: bool = False
) -> TravellerListing | None:
    q = s.query(TravellerListing).filter(
        TravellerListing.user_id == user_id,
        TravellerListing.is_completed.is_(False),
    )
    if airport_code:
        q = q.filter(TravellerListing.flight_arrival == airport_code)
    if ungrouped:
        q = q.filter(TravellerListing.group_id.is_(None))
    return q.order_by(TravellerListing.id.desc()).first()


def listing_for_destination(s: "Session", user_id: int, airport_code: str) -> TravellerListing | None:
    """The user's listing at an airport (active first, else most recent) for destination lookups."""
    return (
        s.query(TravellerListing)
        .filter(TravellerListing.user_id == user_id, TravellerListing.flight_arrival == airport_code)
        .order_by(TravellerListing.is_completed.asc(), TravellerListing.id.desc())
        .first()
    )


def parse_user_id(raw: Any, label: str = "User ID") -> int:
    value = clean_str(raw)
    if not value:
        raise bad_request(f"{label} is required and must be a non-empty string")
    if len(value) > USER_ID_MAX_LENGTH:
        raise bad_request(f"{label} is too long")
    try:
        user_id = int(value)
    except ValueError:
        raise not_found("User not found")
    if not 0 < user_id <= MAX_DB_ID:
        raise not_found("User not found")
    return user_id


# ---------- Payloads ----------
def flight_arrival_time(listing: TravellerListing) -> str | None:
    data = (listing.flight.flight_data if listing.flight else None) or {}
    arrival = data.get("arrival") or {}
    return arrival.get("estimatedActualTime") or arrival.get("scheduledTime")


def connection_status(viewer_id: int | None, viewer_listing: TravellerListing | None, listing: TravellerListing) -> str:
    if viewer_id is None:
        return ConnectionStatus.SEND_REQUEST.value
    if viewer_id in listing.requester_ids:
        return ConnectionStatus.REQUEST_SENT.value
    if viewer_listing is not None and listing.user_id in viewer_listing.requester_ids:
        return ConnectionStatus.REQUEST_RECEIVED.value
    return ConnectionStatus.SEND_REQUEST.value


def serialize_listing(
    listing: TravellerListing,
    *,
    viewer_id: int | None,
    viewer_listing: TravellerListing | None,
    distance_km: float | None,
) -> dict[str, Any]:
    user = listing.user
    flight = listing.flight
    data = (flight.flight_data if flight else None) or {}
    return {
        "id": str(listing.user_id),
        "listingId": str(listing.id),
        "name": user.display_name,
        "gender": "Female" if user.is_female else "Male",
        "username": user.username,
        "photoURL": user.photo_url,
        "destination": listing.destination_address or "N/A",
        "flightDateTime": flight_arrival_time(listing),
        "flightDepartureTime": (data.get("departure") or {}).get("scheduledTime"),
        "terminal": listing.terminal or "N/A",
        "flightNumber": flight.display_number if flight else "",
        "flightCarrier": flight.carrier if flight else None,
        "flightNumberRaw": flight.flight_number if flight else None,
        "distanceFromUserKm": distance_km,
        "bio": user.bio or "No bio available.",
        "tags": user.tags,
        "isVerified": user.is_verified,
        "connectionStatus": connection_status(viewer_id, viewer_listing, listing),
        "isOwnListing": viewer_id is not None and listing.user_id == viewer_id,
        "readyToOnboard": listing.ready_to_onboard,
    }


def serialize_trip(listing: TravellerListing) -> dict[str, Any]:
    flight = listing.flight
    return {
        "travellerDataId": str(listing.id),
        "date": listing.date.isoformat() if listing.date else None,
        "flightArrival": listing.flight_arrival,
        "flightDeparture": listing.flight_departure or "—",
        "destination": listing.destination_address or "N/A",
        "terminal": listing.terminal or "N/A",
        "flightNumber": (flight.display_number if flight else "") or "—",
        "completedAt": isoformat(listing.updated_at) if listing.is_completed else None,
    }


def distances_from_place(origin_place_id: str | None, listings: list[TravellerListing]) -> list[float | None]:
    """Road distance (km) from `origin_place_id` to each listing's destination; None when unknown."""
    maps = get_maps_client()
    if maps is None or not origin_place_id:
        return [None] * len(listings)
    indexed = [(i, item.destination_place_id) for i, item in enumerate(listings) if item.destination_place_id]
    result: list[float | None] = [None] * len(listings)
    if not indexed:
        return result
    try:
        meters = maps.one_to_many(origin_place_id, [p for _, p in indexed])
    except MapsError as e:
        logger.warning("Distance lookup failed from %s: %s", origin_place_id, e)
        return result
    for (i, _), m in zip(indexed, meters):
        result[i] = round(m / 1000, 2) if m is not None else None
    return result


# ---------- Queries ----------
def travellers_by_airport(s: "Session", viewer: User, airport_code: str) -> dict[str, Any]:
    viewer_listing = active_listing(s, viewer.id, airport_code)
    dest = listing_for_destination(s, viewer.id, airport_code)
    listings = (
        s.query(TravellerListing)
        .filter(
            TravellerListing.flight_arrival == airport_code,
            TravellerListing.is_completed.is_(False),
            TravellerListing.group_id.is_(None),
        )
        .order_by(TravellerListing.created_at.asc(), TravellerListing.id.asc())
        .all()
    )
    distances = distances_from_place(dest.destination_place_id if dest else None, listings)
    data = [
        serialize_listing(item, viewer_id=viewer.id, viewer_listing=viewer_listing, distance_km=d)
        for item, d in zip(listings, distances)
    ]
    group_id = viewer_listing.group_id if viewer_listing else None
    return {
        "ok": True,
        "data": data,
        "isUserInGroup": group_id is not None,
        "userGroupId": str(group_id) if group_id is not None else None,
        "userReadyToOnboard": bool(viewer_listing and viewer_listing.ready_to_onboard),
    }


def traveller_by_airport_and_user(s: "Session", viewer: User, airport_code: str, user_id: int) -> dict[str, Any]:
    listing = active_listing(s, user_id, airport_code)
    if listing is None:
        raise not_found("Traveller not found")
    viewer_listing = active_listing(s, viewer.id, airport_code)
    dest = listing_for_destination(s, viewer.id, airport_code)
    distance = distances_from_place(dest.destination_place_id if dest else None, [listing])[0]
    return serialize_listing(listing, viewer_id=viewer.id, viewer_listing=viewer_listing, distance_km=distance)


# ---------- Connection requests ----------
def request_connection(s: "Session", requester: User, body: dict[str, Any]) -> None:
    target_id = parse_user_id(body.get("travellerUid"), "Traveller UID")
    carrier = clean_str(body.get("flightCarrier"))
    flight_number = clean_str(body.get("flightNumber"))
    if not carrier:
        raise bad_request("Flight carrier is required and must be a non-empty string")
    if not flight_number:
        raise bad_request("Flight number is required and must be a non-empty string")
    if target_id == requester.id:
        raise bad_request("Cannot connect with yourself")

    target = s.get(User, target_id)
    if target is None:
        raise not_found("Traveller user not found")
    listing = active_listing(s, target.id, ungrouped=True)
    if listing is None:
        raise not_found("Traveller trip not found")
    flight = listing.flight
    if flight is None or (flight.carrier != carrier.upper() and flight.flight_number != flight_number):
        raise not_found("Matching flight trip not found for this traveller")

    if requester.id not in listing.requester_ids:
        listing.connection_requests.append(ConnectionRequest(requester_user_id=requester.id))
        listing.updated_at = datetime.utcnow()
        s.flush()
        notify_connection_request(s, recipient_id=target.id, requester=requester, airport_code=listing.flight_arrival)
    record_event(
        s,
        actor=requester,
        action="connection.request",
        entity_type="TravellerListing",
        entity_id=str(listing.id),
        metadata={"target_user_id": target.id},
    )


def respond_to_connection(s: "Session", recipient: User, body: dict[str, Any]) -> tuple[ConnectionResponseAction, "Group | None"]:
    """
    Accept: create a two-person group at the recipient's airport and link both listings.
    Reject: drop the request. Returns (action, group or None).
    """
    from app.halfride.modules.groups.service import create_group

    requester_id = parse_user_id(body.get("requesterUserId"), "requesterUserId")
    action = parse_connection_response_action(body.get("action"))
    if action is None:
        raise bad_request(
            f"action must be '{ConnectionResponseAction.ACCEPT.value}' or "
            f"'{ConnectionResponseAction.REJECT.value}' (case-insensitive)"
        )
    if requester_id == recipient.id:
        raise bad_request("Cannot respond to your own request")

    requester = s.get(User, requester_id)
    if requester is None:
        raise not_found("Requester user not found")
    listing = active_listing(s, recipient.id, ungrouped=True)
    if listing is None:
        raise not_found("No active traveller listing found for you")
    request_row = next((r for r in listing.connection_requests if r.requester_user_id == requester_id), None)
    if request_row is None:
        raise bad_request("No connection request from this user")

    if action is ConnectionResponseAction.REJECT:
        listing.connection_requests.remove(request_row)
        s.flush()
        notify_connection_rejected(s, requester_id=requester_id, recipient=recipient)
        record_event(
            s,
            actor=recipient,
            action="connection.reject",
            entity_type="TravellerListing",
            entity_id=str(listing.id),
            metadata={"requester_user_id": requester_id},
        )
        return action, None

    requester_listing = active_listing(s, requester_id, listing.flight_arrival, ungrouped=True)
    if requester_listing is None:
        raise not_found("Requester's trip not found for this airport (may have been removed)")

    listing.connection_requests.remove(request_row)
    group = create_group(s, listing.flight_arrival, [listing, requester_listing])
    notify_connection_accepted(s, requester_id=requester_id, recipient=recipient, group=group)
    record_event(
        s,
        actor=recipient,
        action="connection.accept",
        entity_type="Group",
        entity_id=str(group.id),
        metadata={"requester_user_id": requester_id},
    )
    return action, group


# ---------- Listing lifecycle ----------
def revoke_listing(s: "Session", user: User, airport_code: str) -> None:
    listing = active_listing(s, user.id, airport_code, ungrouped=True)
    if listing is None:
        raise not_found("No active listing found for this airport")
    record_event(
        s,
        actor=user,
        action="listing.revoke",
        entity_type="TravellerListing",
        entity_id=str(listing.id),
        metadata={"airport": airport_code},
    )
    s.delete(listing)


def complete_listing(s: "Session", user: User) -> TravellerListing:
    """
    Close the user's active listing; it becomes a past trip.
    The user leaves their group; the listing keeps group_id unless the group was disbanded.
    """
    listing = active_listing(s, user.id)
    if listing is None:
        raise not_found("No active listing found")
    if listing.group_id is not None:
        from app.halfride.modules.groups.models import Group
        from app.halfride.modules.groups.service import remove_member

        group = s.get(Group, listing.group_id)
        if group is not None and user.id in group.member_ids:
            remove_member(s, group, user, keep_listing_link=True)
    listing.is_completed = True
    listing.connection_requests.clear()
    listing.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="listing.complete",
        entity_type="TravellerListing",
        entity_id=str(listing.id),
    )
    return listing
