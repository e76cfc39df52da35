from __future__ import annotations

import json
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.halfride.models import Base


class FlightDetail(Base):
    """
    Cached flight-tracker snapshot, one row per carrier/number/date.
    flight_key looks like "AI_2988_2026-01-19".
    """

    __tablename__ = "flight_details"
    __table_args__ = (Index("idx_flight_details_date", "flight_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    flight_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    carrier: Mapped[str] = mapped_column(String(8), nullable=False)
    flight_number: Mapped[str] = mapped_column(String(16), nullable=False)
    flight_date: Mapped[date] = mapped_column(Date, nullable=False)

    eta_fetched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    flight_data_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="pending_initial_fetch")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    @property
    def flight_data(self) -> dict | None:
        if not self.flight_data_json:
            return None
        try:
            value = json.loads(self.flight_data_json)
        except json.JSONDecodeError:
            return None
        return value if isinstance(value, dict) else None

    @flight_data.setter
    def flight_data(self, value: dict | None) -> None:
        self.flight_data_json = json.dumps(value, sort_keys=True) if value is not None else None

    @property
    def display_number(self) -> str:
        return f"{self.carrier} {self.flight_number}".strip()
