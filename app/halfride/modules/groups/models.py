from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.halfride.models import Base, User


class Group(Base):
    __tablename__ = "ride_groups"
    __table_args__ = (Index("idx_ride_groups_airport", "flight_arrival_airport"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    flight_arrival_airport: Mapped[str | None] = mapped_column(String(3), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    members: Mapped[list["GroupMember"]] = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="GroupMember.id",
        lazy="selectin",
    )
    join_requests: Mapped[list["GroupJoinRequest"]] = relationship(
        "GroupJoinRequest",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="GroupJoinRequest.id",
        lazy="selectin",
    )

    @property
    def member_ids(self) -> list[int]:
        return [m.user_id for m in self.members]

    @property
    def pending_user_ids(self) -> list[int]:
        return [r.user_id for r in self.join_requests]

    @property
    def display_name(self) -> str:
        return self.name or f"Group of {len(self.members)}"


class GroupMember(Base):
    __tablename__ = "group_members"
    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
        Index("idx_group_members_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("ride_groups.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    group: Mapped[Group] = relationship(Group, back_populates="members")
    user: Mapped[User] = relationship(User, lazy="joined")


class GroupJoinRequest(Base):
    __tablename__ = "group_join_requests"
    __table_args__ = (UniqueConstraint("group_id", "user_id", name="uq_group_join_requests_group_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("ride_groups.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    group: Mapped[Group] = relationship(Group, back_populates="join_requests")
    user: Mapped[User] = relationship(User, lazy="joined")
