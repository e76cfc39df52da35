"""
Notification fan-out for listing, connection and group lifecycle events.

Delivery never fails the request that triggered it: inserts run inside a
savepoint and errors are logged.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from app.halfride.constants import NEARBY_LISTING_RADIUS, NotificationActionType, NotificationType
from app.halfride.maps_client import MapsError, get_maps_client
from app.halfride.modules.notifications.models import Notification
from app.halfride.utils import isoformat

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.halfride.models import User
    from app.halfride.modules.groups.models import Group
    from app.halfride.modules.travellers.models import TravellerListing

logger = logging.getLogger(__name__)


def serialize_notification(n: Notification) -> dict[str, Any]:
    return {
        "id": str(n.id),
        "type": n.type,
        "title": n.title,
        "body": n.body,
        "data": n.data,
        "isRead": n.is_read,
        "createdAt": isoformat(n.created_at),
    }


def _open_group_data(group: "Group", **extra: Any) -> dict[str, Any]:
    data: dict[str, Any] = {"groupId": str(group.id), "groupName": group.display_name}
    if group.flight_arrival_airport:
        data["airportCode"] = group.flight_arrival_airport
        data["action"] = {
            "type": NotificationActionType.OPEN_GROUP.value,
            "payload": {"airportCode": group.flight_arrival_airport, "groupId": str(group.id)},
        }
    data.update({k: v for k, v in extra.items() if v is not None})
    return data


def notify(
    s: "Session",
    recipients: Iterable[int],
    *,
    type: NotificationType,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
    exclude: Iterable[int] = (),
) -> list[Notification]:
    skip = set(exclude)
    unique: list[int] = []
    for uid in recipients:
        if uid not in skip and uid not in unique:
            unique.append(uid)
    if not unique:
        return []

    created: list[Notification] = []
    data_json = json.dumps(data, sort_keys=True) if data else None
    try:
        with s.begin_nested():
            for uid in unique:
                n = Notification(
                    recipient_user_id=uid,
                    type=type.value,
                    title=title,
                    body=body,
                    data_json=data_json,
                    is_read=False,
                )
                s.add(n)
                created.append(n)
    except SQLAlchemyError:
        logger.exception("Failed to deliver %s notification to %s", type.value, unique)
        return []
    return created


# ---------- Listings ----------
def notify_users_near_new_listing(s: "Session", listing: "TravellerListing") -> int:
    """
    Tell travellers at the same airport whose destination is within NEARBY_LISTING_RADIUS
    (road distance) of the new listing's destination. Returns the number notified.
    """
    from app.halfride.modules.travellers.models import TravellerListing

    maps = get_maps_client()
    if maps is None or not listing.destination_place_id:
        return 0

    candidates = (
        s.query(TravellerListing)
        .filter(
            TravellerListing.flight_arrival == listing.flight_arrival,
            TravellerListing.is_completed.is_(False),
            TravellerListing.id != listing.id,
            TravellerListing.user_id != listing.user_id,
            TravellerListing.destination_place_id.isnot(None),
        )
        .all()
    )
    if not candidates:
        return 0

    try:
        distances = maps.one_to_many(listing.destination_place_id, [c.destination_place_id for c in candidates])
    except MapsError as e:
        logger.warning("Nearby-listing distance lookup failed for listing %s: %s", listing.id, e)
        return 0

    count = 0
    for other, meters in zip(candidates, distances):
        if meters is None or meters > NEARBY_LISTING_RADIUS:
            continue
        delivered = notify(
            s,
            [other.user_id],
            type=NotificationType.NEW_LISTING,
            title="New traveller near your destination",
            body=f"New traveller nearby: {meters / 1000:.1f} km from your destination.",
            data={
                "listingId": str(listing.id),
                "actorUserId": str(listing.user_id),
                "airportCode": listing.flight_arrival,
                "metadata": {"distanceMeters": meters},
                "action": {
                    "type": NotificationActionType.OPEN_TRAVELLER.value,
                    "payload": {"airportCode": listing.flight_arrival, "userId": str(listing.user_id)},
                },
            },
        )
        count += len(delivered)
    return count


# ---------- Connections ----------
def notify_connection_request(s: "Session", *, recipient_id: int, requester: "User", airport_code: str) -> None:
    notify(
        s,
        [recipient_id],
        type=NotificationType.CONNECTION_REQUEST,
        title="New Connection Request",
        body=f"{requester.display_name or requester.username} wants to connect with you.",
        data={
            "actorUserId": str(requester.id),
            "airportCode": airport_code,
            "action": {
                "type": NotificationActionType.OPEN_TRAVELLER.value,
                "payload": {"airportCode": airport_code, "userId": str(requester.id)},
            },
        },
    )


def notify_connection_accepted(s: "Session", *, requester_id: int, recipient: "User", group: "Group") -> None:
    notify(
        s,
        [requester_id],
        type=NotificationType.CONNECTION_ACCEPTED,
        title="Connection request accepted",
        body=(
            f"{recipient.display_name or recipient.username} accepted your connection request. "
            f"You're now in a group together: {group.display_name}."
        ),
        data=_open_group_data(group, actorUserId=str(recipient.id)),
    )


def notify_connection_rejected(s: "Session", *, requester_id: int, recipient: "User") -> None:
    notify(
        s,
        [requester_id],
        type=NotificationType.CONNECTION_REJECTED,
        title="Connection request declined",
        body=f"{recipient.display_name or recipient.username} declined your connection request.",
        data={"actorUserId": str(recipient.id)},
    )


# ---------- Groups ----------
def notify_join_request(s: "Session", group: "Group", requester: "User") -> None:
    notify(
        s,
        group.member_ids,
        type=NotificationType.GROUP_JOIN_REQUEST,
        title="New Join Request",
        body=f"{requester.display_name or requester.username} wants to join your group {group.display_name}.",
        data=_open_group_data(group, actorUserId=str(requester.id)),
        exclude=[requester.id],
    )


def notify_join_accepted(s: "Session", group: "Group", requester_id: int) -> None:
    notify(
        s,
        [requester_id],
        type=NotificationType.GROUP_JOIN_ACCEPTED,
        title="Join Request Accepted",
        body=f"You have been accepted into the group {group.display_name}.",
        data=_open_group_data(group),
    )


def notify_join_rejected(s: "Session", group: "Group", requester_id: int, decider: "User") -> None:
    notify(
        s,
        [requester_id],
        type=NotificationType.GROUP_JOIN_REJECTED,
        title="Join Request Declined",
        body=f"{decider.display_name or decider.username} declined your request to join the group {group.display_name}.",
        data=_open_group_data(group),
    )


def notify_join_decided(
    s: "Session", group: "Group", *, decider: "User", requester: "User", accepted: bool
) -> None:
    """Tell the other members, then the decider, how a join request was decided."""
    decider_name = decider.display_name or decider.username
    requester_name = requester.display_name or requester.username
    verb = "accepted" if accepted else "rejected"
    notify(
        s,
        group.member_ids,
        type=NotificationType.GROUP_JOIN_REQUEST_DECIDED,
        title="Join request accepted" if accepted else "Join request declined",
        body=f"{decider_name} {verb} {requester_name}'s request to join the group {group.display_name}.",
        data=_open_group_data(
            group,
            actorUserId=str(decider.id),
            metadata={"requesterUserId": str(requester.id), "accepted": accepted},
        ),
        exclude=[decider.id, requester.id],
    )
    if accepted:
        title = "You accepted the join request"
        body = f"You accepted {requester_name} into the group {group.display_name}."
    else:
        title = "You declined the join request"
        body = f"You declined {requester_name}'s request to join the group {group.display_name}."
    notify(
        s,
        [decider.id],
        type=NotificationType.GROUP_JOIN_REQUEST_DECIDED,
        title=title,
        body=body,
        data=_open_group_data(group, metadata={"accepted": accepted}),
    )


def notify_member_left(s: "Session", group: "Group", leaver: "User") -> None:
    notify(
        s,
        group.member_ids,
        type=NotificationType.GROUP_MEMBER_LEFT,
        title="Member left group",
        body=f"{leaver.display_name or leaver.username} left the group {group.display_name}.",
        data=_open_group_data(group, actorUserId=str(leaver.id)),
        exclude=[leaver.id],
    )


def notify_group_disbanded(s: "Session", *, recipient_ids: Iterable[int], group_id: int, group_name: str) -> None:
    notify(
        s,
        recipient_ids,
        type=NotificationType.GROUP_DISBANDED,
        title="Group disbanded",
        body=f"The group {group_name} has been disbanded because the other member left.",
        data={"groupId": str(group_id), "groupName": group_name},
    )


def notify_group_renamed(s: "Session", group: "Group", actor: "User", old_name: str) -> None:
    notify(
        s,
        group.member_ids,
        type=NotificationType.GROUP_RENAMED,
        title="Group renamed",
        body=f"{actor.display_name or actor.username} renamed the group {old_name} to {group.display_name}.",
        data=_open_group_data(group, actorUserId=str(actor.id)),
        exclude=[actor.id],
    )


def notify_member_ready(s: "Session", group: "Group", user: "User") -> None:
    notify(
        s,
        group.member_ids,
        type=NotificationType.GROUP_MEMBER_READY,
        title="Ready to onboard",
        body=f"{user.display_name or user.username} is at the terminal and ready to onboard.",
        data=_open_group_data(group, actorUserId=str(user.id)),
        exclude=[user.id],
    )


# ---------- Inbox ----------
def list_notifications(s: "Session", user: "User", *, limit: int, unread_only: bool = False) -> list[Notification]:
    q = s.query(Notification).filter(Notification.recipient_user_id == user.id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_count(s: "Session", user: "User") -> int:
    return (
        s.query(func.count(Notification.id))
        .filter(Notification.recipient_user_id == user.id, Notification.is_read.is_(False))
        .scalar()
        or 0
    )


def mark_all_read(s: "Session", user: "User") -> int:
    return (
        s.query(Notification)
        .filter(Notification.recipient_user_id == user.id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )


def seed_dummy_notifications(s: "Session", user: "User") -> list[Notification]:
    seeded: list[Notification] = []
    for type_, title, body, data in (
        (
            NotificationType.NEW_LISTING,
            "New Traveller Detected",
            "A traveller matching your criteria has arrived at JFK.",
            {"listingId": "dummy_listing_123"},
        ),
        (
            NotificationType.GROUP_JOIN_REQUEST,
            "Join Request",
            "John Doe wants to join your group 'Weekend Trip'.",
            {"groupId": "dummy_group_456", "actorUserId": "dummy_user_john"},
        ),
        (
            NotificationType.GROUP_JOIN_ACCEPTED,
            "Request Accepted",
            "Your request to join 'Bali Squad' has been accepted.",
            {"groupId": "dummy_group_789"},
        ),
    ):
        seeded.extend(notify(s, [user.id], type=type_, title=title, body=body, data=data))
    return seeded
