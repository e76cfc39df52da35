"""
Central constants for the HalfRide API.
"""
from __future__ import annotations

from enum import Enum

MAX_GROUP_USERS = 6
DEFAULT_GROUP_NAME = "New Group"
GROUP_NAME_MAX_LENGTH = 50

MAX_MESSAGE_LENGTH = 4000
MESSAGES_DEFAULT_LIMIT = 50
MESSAGES_MAX_LIMIT = 100

NOTIFICATIONS_DEFAULT_LIMIT = 50
NOTIFICATIONS_MAX_LIMIT = 100

PAST_TRIPS_LIMIT = 15

# meters
MAX_DESTINATION_ROAD_DISTANCE = 80_000
NEARBY_LISTING_RADIUS = 5_000
VERIFY_AT_TERMINAL_MAX_DISTANCE = 1_000

# seconds
FLIGHT_DATA_STALE_AFTER = 10 * 60

USER_ID_MAX_LENGTH = 128
TERMINAL_MAX_LENGTH = 20

PHOTO_MAX_BYTES = 5 * 1024 * 1024
PHOTO_SIZE_PX = 192
PHOTO_JPEG_QUALITY = 85
PHOTO_ALLOWED_MIMETYPES = frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"})


class ConnectionResponseAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


def parse_connection_response_action(raw: object) -> ConnectionResponseAction | None:
    """Case-insensitive, whitespace-tolerant parse; None when not a known action."""
    if not isinstance(raw, str):
        return None
    value = raw.strip().lower()
    for action in ConnectionResponseAction:
        if action.value == value:
            return action
    return None


class ConnectionStatus(str, Enum):
    SEND_REQUEST = "SEND_REQUEST"
    REQUEST_SENT = "REQUEST_SENT"
    REQUEST_RECEIVED = "REQUEST_RECEIVED"


class NotificationType(str, Enum):
    NEW_LISTING = "NEW_LISTING"
    GROUP_JOIN_REQUEST = "GROUP_JOIN_REQUEST"
    GROUP_JOIN_ACCEPTED = "GROUP_JOIN_ACCEPTED"
    GROUP_JOIN_REJECTED = "GROUP_JOIN_REJECTED"
    GROUP_JOIN_REQUEST_DECIDED = "GROUP_JOIN_REQUEST_DECIDED"
    GROUP_MEMBER_LEFT = "GROUP_MEMBER_LEFT"
    GROUP_DISBANDED = "GROUP_DISBANDED"
    GROUP_RENAMED = "GROUP_RENAMED"
    GROUP_MEMBER_READY = "GROUP_MEMBER_READY"
    FLIGHT_STATUS = "FLIGHT_STATUS"
    CONNECTION_REQUEST = "CONNECTION_REQUEST"
    CONNECTION_ACCEPTED = "CONNECTION_ACCEPTED"
    CONNECTION_REJECTED = "CONNECTION_REJECTED"


class NotificationActionType(str, Enum):
    OPEN_GROUP = "OPEN_GROUP"
    OPEN_TRAVELLER = "OPEN_TRAVELLER"


class ListingFlightStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PENDING_INITIAL_FETCH = "pending_initial_fetch"


class MessageType(str, Enum):
    USER = "user"
    SYSTEM = "system"
