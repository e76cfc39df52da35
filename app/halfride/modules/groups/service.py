from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.halfride.audit import record_event
from app.halfride.constants import (
    DEFAULT_GROUP_NAME,
    GROUP_NAME_MAX_LENGTH,
    MAX_GROUP_USERS,
    VERIFY_AT_TERMINAL_MAX_DISTANCE,
    ConnectionResponseAction,
    parse_connection_response_action,
)
from app.halfride.errors import bad_request, conflict, forbidden, not_found
from app.halfride.maps_client import MapsError, get_maps_client
from app.halfride.models import User
from app.halfride.modules.airports.service import airport_coordinates
from app.halfride.modules.chat.service import add_system_message
from app.halfride.modules.groups.models import Group, GroupJoinRequest, GroupMember
from app.halfride.modules.notifications.service import (
    notify_group_disbanded,
    notify_group_renamed,
    notify_join_accepted,
    notify_join_decided,
    notify_join_rejected,
    notify_join_request,
    notify_member_left,
    notify_member_ready,
)
from app.halfride.modules.travellers.models import TravellerListing
from app.halfride.modules.travellers.service import active_listing, listing_for_destination, parse_user_id
from app.halfride.utils import clean_str, haversine_distance, is_valid_group_name, isoformat, require_int_id

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


# ---------- Lookups ----------
def get_group_or_404(s: "Session", group_id: int, *, for_update: bool = False) -> Group:
    q = s.query(Group).filter(Group.id == group_id)
    if for_update:
        q = q.with_for_update()
    group = q.one_or_none()
    if group is None:
        raise not_found("Group not found")
    return group


def require_member(group: Group, user: User) -> None:
    if user.id not in group.member_ids:
        raise forbidden("You are not a member of this group")


def group_listings(s: "Session", group: Group) -> dict[int, TravellerListing]:
    """Listings linked to the group by user id; an active listing wins over a completed one."""
    rows = (
        s.query(TravellerListing)
        .filter(TravellerListing.group_id == group.id)
        .order_by(TravellerListing.is_completed.desc(), TravellerListing.id.asc())
        .all()
    )
    return {row.user_id: row for row in rows}


def require_not_grouped(s: "Session", user_ids: list[int]) -> None:
    """A user belongs to at most one group at a time."""
    taken = s.query(GroupMember.user_id).filter(GroupMember.user_id.in_(user_ids)).first()
    if taken is not None:
        raise conflict("A traveller is already in a group", code="ALREADY_IN_GROUP")


def _first_name(user: User) -> str:
    return (user.first_name or "").strip() or "Someone"


# ---------- Payloads ----------
def group_summary(s: "Session", group: Group, viewer: User) -> dict[str, Any]:
    listings = group_listings(s, group)
    members = [m.user for m in group.members]
    destinations = [
        (listings[u.id].destination_address or "N/A") if u.id in listings else "N/A" for u in members
    ]
    female = sum(1 for u in members if u.is_female)
    summary: dict[str, Any] = {
        "id": str(group.id),
        "name": group.display_name,
        "airportCode": group.flight_arrival_airport,
        "destinations": destinations,
        "groupSize": len(members),
        "maxUsers": MAX_GROUP_USERS,
        "genderBreakdown": {"male": len(members) - female, "female": female},
        "createdAt": isoformat(group.created_at),
        "hasPendingJoinRequest": viewer.id in group.pending_user_ids,
    }
    if viewer.id not in group.member_ids and group.flight_arrival_airport:
        avg = _average_road_distance_km(s, viewer, group.flight_arrival_airport, list(listings.values()))
        if avg is not None:
            summary["averageRoadDistanceKm"] = avg
    return summary


def _average_road_distance_km(
    s: "Session", viewer: User, airport_code: str, listings: list[TravellerListing]
) -> float | None:
    maps = get_maps_client()
    if maps is None:
        return None
    mine = listing_for_destination(s, viewer.id, airport_code)
    if mine is None or not mine.destination_place_id:
        return None
    place_ids = [row.destination_place_id for row in listings if row.destination_place_id]
    if not place_ids:
        return None
    try:
        meters = [m for m in maps.one_to_many(mine.destination_place_id, place_ids) if m is not None]
    except MapsError as e:
        logger.warning("Average road distance failed for airport %s: %s", airport_code, e)
        return None
    if not meters:
        return None
    return round(sum(meters) / len(meters) / 1000, 2)


def member_rows(s: "Session", group: Group) -> list[dict[str, Any]]:
    listings = group_listings(s, group)
    rows: list[dict[str, Any]] = []
    for member in group.members:
        user = member.user
        listing = listings.get(user.id)
        row: dict[str, Any] = {
            "id": str(user.id),
            "name": user.display_name or "Unknown",
            "gender": "Female" if user.is_female else "Male",
            "photoURL": user.photo_url,
            "username": user.username,
            "destination": "N/A",
            "terminal": "N/A",
            "flightNumber": "—",
            "readyToOnboard": False,
        }
        if listing is not None:
            row.update(
                {
                    "destination": listing.destination_address or "N/A",
                    "terminal": listing.terminal or "N/A",
                    "flightNumber": (listing.flight.display_number if listing.flight else "") or "—",
                    "readyToOnboard": listing.ready_to_onboard,
                }
            )
        rows.append(row)
    return rows


# ---------- Queries ----------
def groups_by_airport(s: "Session", viewer: User, airport_code: str) -> list[dict[str, Any]]:
    groups = (
        s.query(Group)
        .filter(Group.flight_arrival_airport == airport_code)
        .order_by(Group.created_at.desc(), Group.id.desc())
        .all()
    )
    return [group_summary(s, g, viewer) for g in groups]


def group_detail(s: "Session", viewer: User, group_id: int) -> dict[str, Any]:
    group = get_group_or_404(s, group_id)
    summary = group_summary(s, group, viewer)
    summary["isCurrentUserMember"] = viewer.id in group.member_ids
    return summary


def join_request_rows(s: "Session", viewer: User, group_id: int) -> list[dict[str, Any]]:
    group = get_group_or_404(s, group_id)
    require_member(group, viewer)
    rows: list[dict[str, Any]] = []
    for req in group.join_requests:
        user = req.user
        listing = active_listing(s, user.id, group.flight_arrival_airport)
        rows.append(
            {
                "id": str(user.id),
                "name": user.display_name or "Unknown",
                "gender": "Female" if user.is_female else "Male",
                "photoURL": user.photo_url,
                "username": user.username,
                "destination": (listing.destination_address if listing else None) or "N/A",
                "terminal": (listing.terminal if listing else None) or "N/A",
                "flightNumber": (listing.flight.display_number if listing and listing.flight else "") or "—",
                "requestedAt": isoformat(req.created_at),
            }
        )
    return rows


# ---------- Mutations ----------
def create_group(s: "Session", airport_code: str, listings: list[TravellerListing], name: str = DEFAULT_GROUP_NAME) -> Group:
    """New group with one member per listing, in order; every listing must be ungrouped."""
    if any(row.group_id is not None for row in listings):
        raise conflict("A traveller is already in a group", code="ALREADY_IN_GROUP")
    require_not_grouped(s, [row.user_id for row in listings])
    now = datetime.utcnow()
    group = Group(name=name, flight_arrival_airport=airport_code, created_at=now, updated_at=now)
    for row in listings:
        group.members.append(GroupMember(user_id=row.user_id, joined_at=now))
    s.add(group)
    s.flush()
    for row in listings:
        row.group_id = group.id
        row.updated_at = now
    s.flush()
    return group


def leave_group(s: "Session", user: User, group_id: int) -> str:
    group = get_group_or_404(s, group_id, for_update=True)
    require_member(group, user)
    return remove_member(s, group, user)


def remove_member(s: "Session", group: Group, user: User, *, keep_listing_link: bool = False) -> str:
    """
    Drop `user` from `group`; a group left with fewer than two members is disbanded.
    With keep_listing_link the user's listing keeps group_id while the group survives (trip history).
    """
    group_id = group.id
    listings = group_listings(s, group)
    own = listings.get(user.id)
    if own is not None:
        own.ready_to_onboard = False
        if not keep_listing_link:
            own.group_id = None
    membership = next(m for m in group.members if m.user_id == user.id)
    group.members.remove(membership)
    group_name = group.display_name
    remaining = group.member_ids

    record_event(s, actor=user, action="group.leave", entity_type="Group", entity_id=str(group.id))

    if len(remaining) <= 1:
        if own is not None:
            own.group_id = None
        for uid in remaining:
            if uid in listings:
                listings[uid].group_id = None
        s.delete(group)
        s.flush()
        if remaining:
            notify_group_disbanded(s, recipient_ids=remaining, group_id=group_id, group_name=group_name)
            return "Left group. Group disbanded."
        return "Left group. Group removed."

    group.updated_at = datetime.utcnow()
    add_system_message(s, group.id, f"{_first_name(user)} left the group")
    s.flush()
    notify_member_left(s, group, user)
    return "Left group. Other members notified."


def request_join_group(s: "Session", user: User, group_id: int) -> None:
    group = get_group_or_404(s, group_id)
    if user.id in group.member_ids:
        raise bad_request("You are already a member of this group")
    if user.id in group.pending_user_ids:
        raise bad_request("You already have a pending request for this group")
    if len(group.members) >= MAX_GROUP_USERS:
        raise bad_request("Group is full")
    if not group.flight_arrival_airport:
        raise bad_request("Group has no airport")
    if active_listing(s, user.id, group.flight_arrival_airport, ungrouped=True) is None:
        raise bad_request("You need an active listing at this airport to join the group")
    require_not_grouped(s, [user.id])

    group.join_requests.append(GroupJoinRequest(user_id=user.id))
    group.updated_at = datetime.utcnow()
    s.flush()
    notify_join_request(s, group, user)
    record_event(s, actor=user, action="group.join_request", entity_type="Group", entity_id=str(group.id))


def respond_to_join_request(s: "Session", decider: User, body: dict[str, Any]) -> ConnectionResponseAction:
    group_id = require_int_id(body.get("groupId"), "groupId")
    requester_id = parse_user_id(body.get("requesterUserId"), "requesterUserId")
    action = parse_connection_response_action(body.get("action"))
    if action is None:
        raise bad_request("action must be 'accept' or 'reject' (case-insensitive)")

    group = get_group_or_404(s, group_id, for_update=True)
    require_member(group, decider)
    join_request = next((r for r in group.join_requests if r.user_id == requester_id), None)
    if join_request is None:
        raise not_found("No pending join request from this user")
    requester = join_request.user

    if action is ConnectionResponseAction.REJECT:
        group.join_requests.remove(join_request)
        group.updated_at = datetime.utcnow()
        s.flush()
        notify_join_rejected(s, group, requester.id, decider)
        notify_join_decided(s, group, decider=decider, requester=requester, accepted=False)
        record_event(
            s,
            actor=decider,
            action="group.join_reject",
            entity_type="Group",
            entity_id=str(group.id),
            metadata={"requester_user_id": requester.id},
        )
        return action

    if len(group.members) >= MAX_GROUP_USERS:
        raise bad_request("Group is full")
    listing = active_listing(s, requester.id, group.flight_arrival_airport, ungrouped=True)
    if listing is None:
        raise bad_request("Requester no longer has an active listing at this airport")
    require_not_grouped(s, [requester.id])

    now = datetime.utcnow()
    group.join_requests.remove(join_request)
    group.members.append(GroupMember(user_id=requester.id, joined_at=now))
    group.updated_at = now
    listing.group_id = group.id
    listing.connection_requests.clear()
    listing.updated_at = now
    add_system_message(s, group.id, f"{_first_name(requester)} joined the group")
    s.flush()

    notify_join_accepted(s, group, requester.id)
    notify_join_decided(s, group, decider=decider, requester=requester, accepted=True)
    record_event(
        s,
        actor=decider,
        action="group.join_accept",
        entity_type="Group",
        entity_id=str(group.id),
        metadata={"requester_user_id": requester.id},
    )
    return action


def update_group_name(s: "Session", user: User, body: dict[str, Any]) -> str:
    group_id = require_int_id(body.get("groupId"), "groupId")
    name = clean_str(body.get("name"))
    if not is_valid_group_name(name, GROUP_NAME_MAX_LENGTH):
        raise bad_request(f"Group name must be 1-{GROUP_NAME_MAX_LENGTH} characters (letters and spaces only)")

    group = get_group_or_404(s, group_id)
    require_member(group, user)
    old_name = group.display_name
    group.name = name
    group.updated_at = datetime.utcnow()
    s.flush()
    notify_group_renamed(s, group, user, old_name)
    record_event(
        s,
        actor=user,
        action="group.rename",
        entity_type="Group",
        entity_id=str(group.id),
        metadata={"from": old_name, "to": name},
    )
    return name


def _coordinate(raw: Any, label: str, bound: float) -> float:
    if isinstance(raw, bool):
        raise bad_request(f"{label} must be a number")
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise bad_request(f"{label} must be a number")
    if not -bound <= value <= bound:
        raise bad_request(f"{label} is out of range")
    return value


def verify_at_terminal(s: "Session", user: User, body: dict[str, Any]) -> dict[str, Any]:
    group_id = require_int_id(body.get("groupId"), "groupId")
    latitude = _coordinate(body.get("latitude"), "latitude", 90)
    longitude = _coordinate(body.get("longitude"), "longitude", 180)

    group = get_group_or_404(s, group_id)
    require_member(group, user)
    listing = group_listings(s, group).get(user.id)
    if listing is None:
        raise not_found("No listing found for you in this group")
    airport_code = group.flight_arrival_airport or listing.flight_arrival

    lat, lng = airport_coordinates(s, airport_code)
    distance = haversine_distance(latitude, longitude, lat, lng)
    if distance > VERIFY_AT_TERMINAL_MAX_DISTANCE:
        raise bad_request(
            f"You must be within {VERIFY_AT_TERMINAL_MAX_DISTANCE} m of the airport to verify.",
            code="TOO_FAR_FROM_TERMINAL",
            details={"distanceMeters": round(distance)},
        )

    now = datetime.utcnow()
    listing.ready_to_onboard = True
    listing.ready_to_onboard_at = now
    listing.updated_at = now
    add_system_message(s, group.id, f"{_first_name(user)} is at the terminal and ready to onboard")
    s.flush()
    notify_member_ready(s, group, user)
    record_event(s, actor=user, action="group.verify_at_terminal", entity_type="Group", entity_id=str(group.id))

    return {
        "userCoordinates": {"latitude": latitude, "longitude": longitude},
        "terminalCoordinates": {"airportCode": airport_code, "lat": lat, "lng": lng},
        "distanceMeters": round(distance),
    }
