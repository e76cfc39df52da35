from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.halfride.models import Base, User

if TYPE_CHECKING:
    from app.halfride.modules.flights.models import FlightDetail


class TravellerListing(Base):
    """
    A traveller's posted intent to share a ride from an arrival airport.
    A user has at most one active (not completed) listing; a listing is in at most one group.
    """

    __tablename__ = "traveller_listings"
    __table_args__ = (
        UniqueConstraint("user_id", "flight_id", name="uq_traveller_listings_user_flight"),
        Index("idx_traveller_listings_airport_active", "flight_arrival", "is_completed"),
        Index("idx_traveller_listings_user_active", "user_id", "is_completed"),
        Index("idx_traveller_listings_group", "group_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    flight_id: Mapped[int] = mapped_column(ForeignKey("flight_details.id", ondelete="RESTRICT"), nullable=False)

    date: Mapped[date] = mapped_column(Date, nullable=False)
    flight_arrival: Mapped[str] = mapped_column(String(3), nullable=False)  # IATA code
    flight_departure: Mapped[str | None] = mapped_column(String(8), nullable=True)
    terminal: Mapped[str] = mapped_column(String(20), nullable=False)

    destination_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    destination_place_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    group_id: Mapped[int | None] = mapped_column(ForeignKey("ride_groups.id", ondelete="SET NULL"), nullable=True)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ready_to_onboard: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ready_to_onboard_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped[User] = relationship(User, lazy="joined")
    flight: Mapped["FlightDetail"] = relationship("FlightDetail", lazy="joined")
    connection_requests: Mapped[list["ConnectionRequest"]] = relationship(
        "ConnectionRequest",
        back_populates="listing",
        cascade="all, delete-orphan",
        order_by="ConnectionRequest.id",
        lazy="selectin",
    )

    @property
    def requester_ids(self) -> set[int]:
        return {r.requester_user_id for r in self.connection_requests}


class ConnectionRequest(Base):
    """Pending invitation from `requester_user_id` to the owner of `listing_id`."""

    __tablename__ = "connection_requests"
    __table_args__ = (
        UniqueConstraint("listing_id", "requester_user_id", name="uq_connection_requests_listing_requester"),
        Index("idx_connection_requests_requester", "requester_user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    listing_id: Mapped[int] = mapped_column(ForeignKey("traveller_listings.id", ondelete="CASCADE"), nullable=False)
    requester_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    listing: Mapped[TravellerListing] = relationship(TravellerListing, back_populates="connection_requests")
