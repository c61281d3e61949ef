"""Engine coordinating entries, draw requests and winner payouts."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from .collaborators import PayoutGateway, RandomnessCoordinator
from .selection import first_random_word, select_winner_index
from .upkeep import UpkeepStatus, evaluate_upkeep
from ..config import LotteryConfig
from ..db.utils import ensure_utc
from ..exceptions import (
    CallerNotAuthorized,
    DrawNotReady,
    InsufficientPayment,
    LotteryNotOpened,
    PayoutTransferFailed,
    RandomnessRequestFailed,
    RoundNotOpen,
    UnknownDrawRequest,
)
from ..models import (
    DRAW_REQUESTED,
    ENTRY_RECORDED,
    WINNER_PICKED,
    DrawRequest,
    Lottery,
    LotteryEntry,
    LotteryEvent,
    RoundState,
)

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class LotteryEngine:
    """Single-instance lottery bound to a SQLAlchemy session.

    Each mutating operation (:meth:`enter`, :meth:`request_draw`,
    :meth:`resolve`) locks the lottery row and applies its changes inside a
    savepoint, so a failure leaves the caller's transaction exactly as it was.
    The caller owns the outer transaction and decides when to commit.

    Any operation that both mutates internal state and moves value out of
    custody must finish every internal mutation first and perform the
    transfer as its last step.
    """

    def __init__(
        self,
        session: Session,
        config: LotteryConfig,
        *,
        coordinator: RandomnessCoordinator,
        payouts: PayoutGateway,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Create an engine.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session used for lookups and persistence.
        config : LotteryConfig
            Immutable lottery parameters.
        coordinator : RandomnessCoordinator
            Oracle used to request random words.
        payouts : PayoutGateway
            Gateway used to pay the pool to the winner.
        clock : Optional[Callable[[], datetime]], default: None
            Source of the current time. Defaults to ``datetime.now(timezone.utc)``.
        """

        self._session = session
        self._config = config
        self._coordinator = coordinator
        self._payouts = payouts
        self._clock = clock or _utc_now

    # -------- configuration accessors --------
    @property
    def config(self) -> LotteryConfig:
        return self._config

    @property
    def entry_fee(self) -> int:
        return self._config.entry_fee

    @property
    def interval(self) -> timedelta:
        return self._config.interval

    @property
    def subscription_id(self) -> int:
        return self._config.subscription_id

    @property
    def num_words(self) -> int:
        return self._config.num_words

    @property
    def request_confirmations(self) -> int:
        return self._config.request_confirmations

    @property
    def coordinator_address(self) -> str:
        return self._config.coordinator_address

    # -------- lifecycle --------
    def open(self, now: Optional[datetime] = None) -> Lottery:
        """Create the lottery row if it does not exist yet and return it.

        The first round starts at ``now``; calling again is a no-op.
        """

        lottery = Lottery.get(self._session)
        if lottery is not None:
            return lottery

        lottery = Lottery(
            id=Lottery.SINGLETON_ID,
            state=RoundState.OPEN.value,
            round_number=1,
            pool_balance=0,
            last_draw_at=self._now(now),
        )
        self._session.add(lottery)
        self._session.flush()
        logger.info(
            f"Lottery opened (entry_fee={self.entry_fee}, interval={self.interval})"
        )
        return lottery

    # -------- entry registry --------
    def enter(
        self,
        participant: str,
        paid_amount: int,
        now: Optional[datetime] = None,
    ) -> LotteryEntry:
        """Record one entry slot for ``participant``.

        Parameters
        ----------
        participant : str
            Identifier the prize is paid to if this slot wins.
        paid_amount : int
            Payment accompanying the entry. All of it goes into the pool.
        now : Optional[datetime], default: None
            Entry timestamp; defaults to the engine clock.

        Returns
        -------
        LotteryEntry
            The newly appended slot.

        Raises
        ------
        InsufficientPayment
            If ``paid_amount`` is below the entry fee.
        RoundNotOpen
            If a draw is being calculated.
        """

        if not isinstance(participant, str) or not participant.strip():
            raise ValueError("participant must be a non-empty string")
        if isinstance(paid_amount, bool) or not isinstance(paid_amount, int):
            raise TypeError("paid_amount must be an integer")
        if paid_amount < 0:
            raise ValueError("paid_amount must not be negative")
        participant = participant.strip()

        # A closed round rejects every entry, whatever was paid.
        lottery = self._load(for_update=True)
        if lottery.round_state is not RoundState.OPEN:
            logger.warning(f"Rejected entry from {participant}: round is {lottery.state}")
            raise RoundNotOpen(lottery.state)

        if paid_amount < self.entry_fee:
            logger.warning(
                f"Rejected entry from {participant}: paid {paid_amount} < fee {self.entry_fee}"
            )
            raise InsufficientPayment(paid_amount, self.entry_fee)

        with self._session.begin_nested():
            entry = LotteryEntry(
                round_number=lottery.round_number,
                slot=lottery.entry_count(self._session),
                participant=participant,
                amount_paid=paid_amount,
                entered_at=self._now(now),
            )
            self._session.add(entry)
            lottery.pool_balance = lottery.pool_balance + paid_amount
            self._emit(
                ENTRY_RECORDED,
                lottery.round_number,
                participant=participant,
                slot=entry.slot,
            )
        return entry

    # -------- upkeep --------
    def check_upkeep(self, now: Optional[datetime] = None) -> UpkeepStatus:
        """Return the readiness of the current round with diagnostics.

        Reads only; safe to call any number of times.
        """

        return self._upkeep_status(self._load(), self._now(now))

    def evaluate(self, now: Optional[datetime] = None) -> bool:
        """Return ``True`` when a draw may start."""

        return self.check_upkeep(now).ready

    # -------- randomness request --------
    def request_draw(self, now: Optional[datetime] = None) -> DrawRequest:
        """Close the round and ask the coordinator for one random word.

        While the returned request is pending the round stays ``calculating``,
        which rejects new entries and any further draw request.

        Raises
        ------
        DrawNotReady
            If :meth:`evaluate` is false.
        RandomnessRequestFailed
            If the coordinator does not accept the request. The round is left
            open.
        """

        now = self._now(now)
        lottery = self._load(for_update=True)
        status = self._upkeep_status(lottery, now)
        if not status.ready:
            logger.warning(
                f"Draw not ready (balance={status.balance}, "
                f"entries={status.entry_count}, state={lottery.state})"
            )
            raise DrawNotReady(status.balance, status.entry_count, lottery.state)

        with self._session.begin_nested():
            lottery.state = RoundState.CALCULATING.value
            self._session.flush()

            try:
                request_id = self._coordinator.request_random_words(
                    key_hash=self._config.key_hash,
                    subscription_id=self._config.subscription_id,
                    request_confirmations=self._config.request_confirmations,
                    callback_gas_limit=self._config.callback_gas_limit,
                    num_words=self._config.num_words,
                )
            except Exception as e:
                logger.error(f"Randomness request failed: {e}")
                raise RandomnessRequestFailed(f"Randomness request failed: {e}") from e
            if request_id is None:
                raise RandomnessRequestFailed("Coordinator returned no request id")

            draw = DrawRequest(
                request_id=str(request_id),
                round_number=lottery.round_number,
                status="pending",
                requested_at=now,
            )
            self._session.add(draw)
            lottery.pending_request_id = draw.request_id
            self._emit(DRAW_REQUESTED, lottery.round_number, request_id=draw.request_id)
        return draw

    # -------- winner resolution --------
    def resolve(
        self,
        caller: str,
        request_id: int,
        random_words: Sequence[int],
        now: Optional[datetime] = None,
    ) -> DrawRequest:
        """Pick the winner for the pending request and pay out the pool.

        Parameters
        ----------
        caller : str
            Address of whoever delivers the random words. Must be the
            configured coordinator.
        request_id : int
            Id returned by the coordinator for the pending request.
        random_words : Sequence[int]
            Delivered random words; only the first one is used.
        now : Optional[datetime], default: None
            Resolution timestamp; becomes the start of the next round.

        Returns
        -------
        DrawRequest
            The fulfilled request carrying the winner and prize.

        Notes
        -----
        The winner is recorded, the round reopened, the registry cleared and
        the timestamp updated before the payout is attempted. If the payout
        fails all of that is rolled back together with it.

        Raises
        ------
        CallerNotAuthorized
            If ``caller`` is not the coordinator.
        UnknownDrawRequest
            If ``request_id`` is not the pending request.
        InvariantViolation
            If the registry is empty.
        PayoutTransferFailed
            If the winner could not be paid.
        """

        if not self._config.is_coordinator(caller):
            logger.warning(f"Rejected fulfilment of request {request_id} from {caller}")
            raise CallerNotAuthorized(caller)
        word = first_random_word(random_words)

        now = self._now(now)
        lottery = self._load(for_update=True)
        draw = DrawRequest.get_by_request_id(self._session, request_id)
        if (
            lottery.round_state is not RoundState.CALCULATING
            or lottery.pending_request_id != str(request_id)
            or draw is None
            or draw.status != "pending"
        ):
            logger.warning(f"Fulfilment for unknown request {request_id}")
            raise UnknownDrawRequest(request_id)

        entries = lottery.current_entries(self._session)
        if not entries:
            logger.critical(
                f"Request {request_id} fulfilled while round {lottery.round_number} has no entries"
            )
        winner_index = select_winner_index(word, len(entries))
        winner = entries[winner_index].participant

        with self._session.begin_nested():
            prize = lottery.pool_balance
            lottery.recent_winner = winner
            lottery.state = RoundState.OPEN.value
            lottery.round_number = lottery.round_number + 1
            lottery.last_draw_at = now
            lottery.pool_balance = 0
            lottery.pending_request_id = None

            draw.status = "fulfilled"
            draw.random_word = str(word)
            draw.winner_index = winner_index
            draw.winner = winner
            draw.prize = prize
            draw.fulfilled_at = now
            self._session.flush()

            self._pay(winner, prize)
            self._emit(
                WINNER_PICKED,
                draw.round_number,
                winner=winner,
                prize=prize,
                request_id=draw.request_id,
            )
        return draw

    # -------- read-only accessors --------
    def state(self) -> RoundState:
        return self._load().round_state

    def round_number(self) -> int:
        return self._load().round_number

    def entries(self) -> list[str]:
        """Snapshot of the current registry, one item per slot."""

        return [entry.participant for entry in self._load().current_entries(self._session)]

    def entry_at(self, index: int) -> str:
        entries = self.entries()
        if index < 0 or index >= len(entries):
            raise IndexError(f"No entry at index {index}")
        return entries[index]

    def entry_count(self) -> int:
        return self._load().entry_count(self._session)

    def pool_balance(self) -> int:
        return self._load().pool_balance

    def last_draw_at(self) -> datetime:
        return self._load().last_draw_at_utc

    def recent_winner(self) -> Optional[str]:
        return self._load().recent_winner

    def pending_request_id(self) -> Optional[int]:
        pending = self._load().pending_request_id
        return int(pending) if pending is not None else None

    def events(self, name: Optional[str] = None) -> list[LotteryEvent]:
        return LotteryEvent.fetch(self._session, name)

    # -------- internals --------
    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now if now is not None else self._clock())

    def _load(self, *, for_update: bool = False) -> Lottery:
        lottery = Lottery.get(self._session, for_update=for_update)
        if lottery is None:
            raise LotteryNotOpened()
        return lottery

    def _upkeep_status(self, lottery: Lottery, now: datetime) -> UpkeepStatus:
        return evaluate_upkeep(
            now=now,
            last_draw_at=lottery.last_draw_at_utc,
            interval=self.interval,
            state=lottery.round_state,
            balance=lottery.pool_balance,
            entry_count=lottery.entry_count(self._session),
        )

    def _pay(self, winner: str, amount: int) -> None:
        try:
            accepted = self._payouts.transfer(winner, amount)
        except Exception as e:
            logger.error(f"Payout of {amount} to {winner} raised: {e}")
            raise PayoutTransferFailed(winner, amount) from e
        if not accepted:
            logger.warning(f"Payout of {amount} to {winner} was rejected")
            raise PayoutTransferFailed(winner, amount)

    def _emit(self, name: str, round_number: int, **payload) -> LotteryEvent:
        event = LotteryEvent(
            name=name,
            round_number=round_number,
            payload_json=json.dumps(payload, sort_keys=True),
        )
        self._session.add(event)
        logger.info(f"{name} (round {round_number}): {payload}")
        return event


__all__ = ["LotteryEngine"]
