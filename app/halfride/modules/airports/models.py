from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.halfride.models import Base


class Airport(Base):
    __tablename__ = "airports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    iata_code: Mapped[str] = mapped_column(String(3), nullable=False, unique=True)
    icao_code: Mapped[str | None] = mapped_column(String(4), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str | None] = mapped_column(String(128), nullable=True)
    country: Mapped[str | None] = mapped_column(String(128), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    terminals: Mapped[list["Terminal"]] = relationship(
        "Terminal",
        back_populates="airport",
        cascade="all, delete-orphan",
        order_by="Terminal.id",
        lazy="selectin",
    )


class Terminal(Base):
    __tablename__ = "airport_terminals"
    __table_args__ = (
        UniqueConstraint("airport_id", "code", name="uq_airport_terminals_airport_code"),
        Index("idx_airport_terminals_airport", "airport_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    airport_id: Mapped[int] = mapped_column(ForeignKey("airports.id", ondelete="CASCADE"), nullable=False)
    code: Mapped[str] = mapped_column(String(20), nullable=False)  # e.g. "T3"
    name: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "Terminal 3"

    airport: Mapped[Airport] = relationship("Airport", back_populates="terminals")
