"""Database models for the lottery round state and its entry registry."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base
from .id_type import AMOUNT_TYPE, ID_TYPE
from ..db.utils import ensure_utc


class RoundState(str, enum.Enum):
    """Gate controlling entry and draw start."""

    OPEN = "open"
    CALCULATING = "calculating"


class Lottery(Base):
    """Single row holding the state of the current round.

    The row is created once and then cycles between ``open`` and
    ``calculating`` for the lifetime of the system. ``round_number`` is bumped
    on every resolution, which is how the entry registry is cleared.
    """

    __tablename__ = "lotteries"

    SINGLETON_ID = 1

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    """Primary key. Always :attr:`SINGLETON_ID`."""

    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RoundState.OPEN.value
    )
    """Current :class:`RoundState` value."""

    round_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    """Number of the round currently accepting or awaiting a draw."""

    pool_balance: Mapped[int] = mapped_column(AMOUNT_TYPE, nullable=False, default=0)
    """Aggregate custody of every payment received in the current round."""

    last_draw_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    """When the round was opened or last resolved."""

    recent_winner: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Winner of the most recently resolved round."""

    pending_request_id: Mapped[Optional[str]] = mapped_column(
        String(78), nullable=True
    )
    """Request id of the outstanding randomness request, if any."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("state IN ('open','calculating')", name="state_enum"),
        CheckConstraint("pool_balance >= 0", name="pool_balance_non_negative"),
    )

    @property
    def round_state(self) -> RoundState:
        return RoundState(self.state)

    @property
    def last_draw_at_utc(self) -> datetime:
        return ensure_utc(self.last_draw_at)

    @classmethod
    def get(cls, session: Session, *, for_update: bool = False) -> Optional["Lottery"]:
        """Return the lottery row, optionally locking it for the transaction."""

        stmt = select(cls).where(cls.id == cls.SINGLETON_ID)
        if for_update:
            stmt = stmt.with_for_update(nowait=False)
        return session.scalar(stmt)

    def current_entries(self, session: Session) -> list["LotteryEntry"]:
        """Return the registry of the current round ordered by slot."""

        stmt = (
            select(LotteryEntry)
            .where(LotteryEntry.round_number == self.round_number)
            .order_by(LotteryEntry.slot)
        )
        return list(session.scalars(stmt))

    def entry_count(self, session: Session) -> int:
        stmt = select(func.count(LotteryEntry.id)).where(
            LotteryEntry.round_number == self.round_number
        )
        return int(session.scalar(stmt) or 0)

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Lottery(round_number={self.round_number}, state='{self.state}', "
            f"pool_balance={self.pool_balance})>"
        )


class LotteryEntry(Base):
    """One entry slot in a round.

    A participant who enters ``k`` times occupies ``k`` slots and is therefore
    ``k`` times as likely to be drawn.
    """

    __tablename__ = "lottery_entries"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    slot: Mapped[int] = mapped_column(Integer, nullable=False)
    """Zero-based position within the round."""

    participant: Mapped[str] = mapped_column(String(255), nullable=False)
    amount_paid: Mapped[int] = mapped_column(AMOUNT_TYPE, nullable=False)
    entered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint(
            "round_number", "slot", name="lottery_entries_round_slot_key"
        ),
        CheckConstraint("slot >= 0", name="slot_non_negative"),
        Index("ix_lottery_entries_participant", "participant"),
    )

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<LotteryEntry(round_number={self.round_number}, slot={self.slot}, "
            f"participant={self.participant})>"
        )
