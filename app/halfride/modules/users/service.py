from __future__ import annotations

import io
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from PIL import Image, ImageOps, UnidentifiedImageError
from sqlalchemy import func

from app.halfride.audit import record_event
from app.halfride.constants import (
    PAST_TRIPS_LIMIT,
    PHOTO_ALLOWED_MIMETYPES,
    PHOTO_JPEG_QUALITY,
    PHOTO_MAX_BYTES,
    PHOTO_SIZE_PX,
)
from app.halfride.errors import bad_request, not_found
from app.halfride.models import User
from app.halfride.modules.groups.models import Group
from app.halfride.modules.travellers.models import TravellerListing
from app.halfride.modules.travellers.service import active_listing, serialize_trip
from app.halfride.storage import Storage, StorageError, avatar_key
from app.halfride.utils import NAME_MAX_LENGTH, clean_str, is_valid_name, isoformat

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

BIO_MAX_LENGTH = 500
MAX_TAGS = 10
TAG_MAX_LENGTH = 30


def find_user_by_username(s: "Session", username: str) -> User | None:
    return s.query(User).filter(func.lower(User.username) == username.lower()).one_or_none()


def own_profile(user: User) -> dict[str, Any]:
    return {
        "userID": str(user.id),
        "username": user.username,
        "FirstName": user.first_name,
        "LastName": user.last_name,
        "DOB": user.dob.isoformat() if user.dob else None,
        "isFemale": user.is_female,
        "Phone": user.phone,
        "bio": user.bio,
        "tags": user.tags,
        "photoURL": user.photo_url,
        "isVerified": user.is_verified,
        "createdAt": isoformat(user.created_at),
        "updatedAt": isoformat(user.updated_at),
    }


def _clean_tags(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        raise bad_request("tags must be a list of strings")
    tags: list[str] = []
    for item in raw:
        if not isinstance(item, str):
            raise bad_request("tags must be a list of strings")
        tag = item.strip()
        if not tag:
            continue
        if len(tag) > TAG_MAX_LENGTH:
            raise bad_request(f"Each tag must be at most {TAG_MAX_LENGTH} characters")
        if tag not in tags:
            tags.append(tag)
    if len(tags) > MAX_TAGS:
        raise bad_request(f"At most {MAX_TAGS} tags are allowed")
    return tags


def update_profile(s: "Session", user: User, body: dict[str, Any]) -> User:
    changed: dict[str, Any] = {}
    if "bio" in body:
        bio = clean_str(body.get("bio"))
        if len(bio) > BIO_MAX_LENGTH:
            raise bad_request(f"bio must be at most {BIO_MAX_LENGTH} characters")
        user.bio = bio or None
        changed["bio"] = True
    if "tags" in body:
        user.tags = _clean_tags(body.get("tags"))
        changed["tags"] = user.tags
    for field, attr in (("FirstName", "first_name"), ("LastName", "last_name")):
        if field in body:
            value = clean_str(body.get(field))
            if not is_valid_name(value):
                raise bad_request(f"{field} is required (max {NAME_MAX_LENGTH} characters)")
            setattr(user, attr, value)
            changed[field] = value
    if not changed:
        raise bad_request("Nothing to update. Allowed fields: bio, tags, FirstName, LastName")

    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="user.profile_update",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"fields": sorted(changed)},
    )
    return user


def profile_by_username(s: "Session", viewer: User, username: str) -> dict[str, Any]:
    username = clean_str(username)
    if not username:
        raise bad_request("Username is required")
    user = find_user_by_username(s, username)
    if user is None:
        raise not_found("User not found")
    is_own = user.id == viewer.id

    public: dict[str, Any] = {
        "userID": str(user.id),
        "username": user.username,
        "FirstName": user.first_name,
        "LastName": user.last_name,
        "bio": user.bio,
        "photoURL": user.photo_url,
        "tags": user.tags,
    }
    if is_own:
        public["Phone"] = user.phone
        public["DOB"] = user.dob.isoformat() if user.dob else None
        public["isFemale"] = user.is_female

    past = (
        s.query(TravellerListing)
        .filter(TravellerListing.user_id == user.id, TravellerListing.is_completed.is_(True))
        .order_by(TravellerListing.date.desc(), TravellerListing.id.desc())
        .limit(PAST_TRIPS_LIMIT)
        .all()
    )

    active_trip = None
    current_group = None
    listing = active_listing(s, user.id)
    if listing is not None:
        trip = serialize_trip(listing)
        active_trip = {
            "flightArrival": trip["flightArrival"] or "—",
            "flightDeparture": trip["flightDeparture"],
            "destination": trip["destination"],
            "terminal": trip["terminal"],
            "flightNumber": trip["flightNumber"],
        }
        group = s.get(Group, listing.group_id) if listing.group_id else None
        if group is not None:
            current_group = {
                "groupId": str(group.id),
                "name": group.display_name,
                "flightArrivalAirport": group.flight_arrival_airport,
                "memberCount": len(group.members),
            }

    return {
        "ok": True,
        "user": public,
        "isOwnProfile": is_own,
        "pastTrips": [serialize_trip(row) for row in past],
        "activeTrip": active_trip,
        "currentGroup": current_group,
    }


def make_avatar(data: bytes) -> bytes:
    """Center-crop and resize an uploaded image to a square JPEG avatar."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            avatar = ImageOps.fit(img.convert("RGB"), (PHOTO_SIZE_PX, PHOTO_SIZE_PX), Image.LANCZOS)
    except (UnidentifiedImageError, OSError) as e:
        raise bad_request("Photo could not be read as an image", details={"reason": str(e)})
    out = io.BytesIO()
    avatar.save(out, format="JPEG", quality=PHOTO_JPEG_QUALITY)
    return out.getvalue()


def save_profile_photo(
    s: "Session", storage: Storage, user: User, data: bytes, content_type: str | None
) -> str | None:
    """
    Store a new avatar and point the user at it. Returns the previous key; the caller
    removes it with discard_photo() once the change is committed.
    """
    if (content_type or "").lower() not in PHOTO_ALLOWED_MIMETYPES:
        raise bad_request("Photo must be a JPEG, PNG, WebP or GIF image")
    if not data:
        raise bad_request("No photo file provided")
    if len(data) > PHOTO_MAX_BYTES:
        raise bad_request(f"Photo must be at most {PHOTO_MAX_BYTES // (1024 * 1024)} MB")

    avatar = make_avatar(data)
    key = avatar_key(user.id)
    storage.write(key, avatar, content_type="image/jpeg")

    old_key = user.photo_key
    user.photo_key = key
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        action="user.photo_upload",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"storage_key": key, "size_bytes": len(avatar)},
    )
    return old_key if old_key != key else None


def discard_photo(storage: Storage, key: str | None) -> None:
    if not key:
        return
    try:
        storage.remove(key)
    except (OSError, StorageError) as e:
        logger.warning("Could not delete avatar %s: %s", key, e)
