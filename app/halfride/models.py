from __future__ import annotations

import json
from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    dob: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_female: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)

    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    tags_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON list of strings
    photo_key: Mapped[str | None] = mapped_column(String(512), nullable=True)  # storage key
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # sha256 of the current session id; None means every session is revoked
    session_jti_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    session_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    @property
    def tags(self) -> list[str]:
        if not self.tags_json:
            return []
        try:
            value = json.loads(self.tags_json)
        except json.JSONDecodeError:
            return []
        return [str(t) for t in value] if isinstance(value, list) else []

    @tags.setter
    def tags(self, value: list[str] | None) -> None:
        self.tags_json = json.dumps(list(value)) if value else None

    @property
    def photo_url(self) -> str | None:
        if not self.photo_key:
            return None
        return f"/api/user/{self.id}/photo"


class AuditEvent(Base):
    """
    Append-only audit trail event (auth, listing and group lifecycle).
    """

    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    actor_username: Mapped[str | None] = mapped_column(String(30), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "auth.login"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Group"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.halfride.modules.airports.models import Airport, Terminal  # noqa: E402,F401
from app.halfride.modules.flights.models import FlightDetail  # noqa: E402,F401
from app.halfride.modules.groups.models import Group, GroupJoinRequest, GroupMember  # noqa: E402,F401
from app.halfride.modules.travellers.models import ConnectionRequest, TravellerListing  # noqa: E402,F401
from app.halfride.modules.chat.models import GroupMessage  # noqa: E402,F401
from app.halfride.modules.notifications.models import Notification  # noqa: E402,F401
