from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, or_

from app.halfride.constants import MAX_MESSAGE_LENGTH, MessageType
from app.halfride.errors import bad_request, forbidden, not_found
from app.halfride.modules.chat.models import GroupMessage
from app.halfride.utils import isoformat

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.halfride.models import User
    from app.halfride.modules.groups.models import Group


def serialize_message(m: GroupMessage) -> dict[str, Any]:
    deleted = m.deleted_at is not None
    return {
        "id": str(m.id),
        "groupId": str(m.group_id),
        "type": m.type,
        "text": "" if deleted else m.text,
        "senderUserId": str(m.sender_id) if m.sender_id is not None else None,
        "senderDisplayName": m.sender_display_name,
        "senderPhotoURL": m.sender_photo_url,
        "createdAt": isoformat(m.created_at),
        "deletedAt": isoformat(m.deleted_at),
    }


def _member_group(s: "Session", user: "User", group_id: int) -> "Group":
    from app.halfride.modules.groups.models import Group

    group = s.get(Group, group_id)
    if group is None:
        raise not_found("Group not found")
    if user.id not in group.member_ids:
        raise forbidden("You are not a member of this group")
    return group


def add_system_message(s: "Session", group_id: int, text: str) -> GroupMessage:
    m = GroupMessage(group_id=group_id, type=MessageType.SYSTEM.value, text=text, created_at=datetime.utcnow())
    s.add(m)
    return m


def send_message(s: "Session", user: "User", group_id: int, raw_text: Any) -> GroupMessage:
    if not isinstance(raw_text, str):
        raise bad_request("text is required")
    text = raw_text.strip()
    if not text:
        raise bad_request("Message text cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise bad_request(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")
    _member_group(s, user, group_id)

    m = GroupMessage(
        group_id=group_id,
        type=MessageType.USER.value,
        sender_id=user.id,
        sender_display_name=user.username or str(user.id),
        sender_photo_url=user.photo_url,
        text=text,
        created_at=datetime.utcnow(),
    )
    s.add(m)
    s.flush()
    return m


def _cursor(s: "Session", group_id: int, message_id: int | None, label: str) -> GroupMessage | None:
    if message_id is None:
        return None
    m = s.get(GroupMessage, message_id)
    if m is None or m.group_id != group_id:
        raise bad_request(f"{label} must be the id of a message in this group")
    return m


def list_messages(
    s: "Session",
    user: "User",
    group_id: int,
    *,
    limit: int,
    before: int | None = None,
    after: int | None = None,
) -> tuple[list[GroupMessage], bool]:
    """
    Without `after`: newest-first page, optionally older than the `before` message.
    With `after`: messages newer than that message, oldest first (polling).
    Returns (messages, has_more).
    """
    _member_group(s, user, group_id)
    q = s.query(GroupMessage).filter(GroupMessage.group_id == group_id)

    after_msg = _cursor(s, group_id, after, "after")
    if after_msg is not None:
        q = q.filter(
            or_(
                GroupMessage.created_at > after_msg.created_at,
                and_(GroupMessage.created_at == after_msg.created_at, GroupMessage.id > after_msg.id),
            )
        )
        rows = q.order_by(GroupMessage.created_at.asc(), GroupMessage.id.asc()).limit(limit).all()
        return rows, len(rows) == limit

    before_msg = _cursor(s, group_id, before, "before")
    if before_msg is not None:
        q = q.filter(
            or_(
                GroupMessage.created_at < before_msg.created_at,
                and_(GroupMessage.created_at == before_msg.created_at, GroupMessage.id < before_msg.id),
            )
        )
    rows = q.order_by(GroupMessage.created_at.desc(), GroupMessage.id.desc()).limit(limit).all()
    return rows, len(rows) == limit


def delete_message(s: "Session", user: "User", group_id: int, message_id: int) -> GroupMessage:
    """Soft delete; only the sender may delete their own message."""
    _member_group(s, user, group_id)
    m = s.get(GroupMessage, message_id)
    if m is None or m.group_id != group_id:
        raise not_found("Message not found")
    if m.type != MessageType.USER.value or m.sender_id != user.id:
        raise forbidden("You can only delete your own messages")
    if m.deleted_at is None:
        m.deleted_at = datetime.utcnow()
        m.deleted_by = user.id
    return m
