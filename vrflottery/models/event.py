from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base
from .id_type import ID_TYPE

ENTRY_RECORDED = "EntryRecorded"
DRAW_REQUESTED = "DrawRequested"
WINNER_PICKED = "WinnerPicked"


class LotteryEvent(Base):
    """Notification emitted by the engine.

    Events are written in the same transaction as the change they describe,
    so a rolled back operation leaves no event behind.
    """

    __tablename__ = "lottery_events"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint(
            "name IN ('EntryRecorded','DrawRequested','WinnerPicked')",
            name="name_enum",
        ),
        Index("ix_lottery_events_name", "name"),
    )

    @property
    def payload(self) -> dict[str, Any]:
        if not self.payload_json:
            return {}
        return json.loads(self.payload_json)

    @classmethod
    def fetch(
        cls, session: Session, name: Optional[str] = None
    ) -> list["LotteryEvent"]:
        """Return events in emission order, optionally filtered by ``name``."""

        stmt = select(cls).order_by(cls.id)
        if name is not None:
            stmt = stmt.where(cls.name == name)
        return list(session.scalars(stmt))

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<LotteryEvent(id={self.id}, name={self.name}, round_number={self.round_number})>"
