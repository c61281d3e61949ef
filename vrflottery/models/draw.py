from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base
from .id_type import AMOUNT_TYPE, ID_TYPE


class DrawRequest(Base):
    """Randomness request issued for a round and, once fulfilled, its outcome.

    The pending row is the correlation between an oracle request id and the
    in-flight round.
    """

    __tablename__ = "draw_requests"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    # Oracle ids are uint256, stored in decimal form.
    request_id: Mapped[str] = mapped_column(String(78), nullable=False, unique=True)
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    random_word: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    winner_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    winner: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    prize: Mapped[Optional[int]] = mapped_column(AMOUNT_TYPE, nullable=True)
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    fulfilled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint("status IN ('pending','fulfilled')", name="status_enum"),
        Index("ix_draw_requests_round_number", "round_number"),
    )

    @classmethod
    def get_by_request_id(
        cls, session: Session, request_id: int | str
    ) -> Optional["DrawRequest"]:
        return session.scalar(select(cls).where(cls.request_id == str(request_id)))

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<DrawRequest(request_id={self.request_id}, round_number={self.round_number}, "
            f"status='{self.status}', winner={self.winner})>"
        )
