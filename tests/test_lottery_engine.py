from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete

from vrflottery.config import LotteryConfig
from vrflottery.db.engine import get_sessionmaker, make_engine
from vrflottery.exceptions import (
    CallerNotAuthorized,
    DrawNotReady,
    InsufficientPayment,
    InvariantViolation,
    LotteryNotOpened,
    PayoutTransferFailed,
    RandomnessRequestFailed,
    RoundNotOpen,
    UnknownDrawRequest,
)
from vrflottery.lottery import LotteryEngine, PayoutGateway, RandomnessCoordinator
from vrflottery.models import (
    DRAW_REQUESTED,
    ENTRY_RECORDED,
    WINNER_PICKED,
    Base,
    DrawRequest,
    LotteryEntry,
    RoundState,
)

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
COORDINATOR = "0xC0oRd1NaT0r"


class DummyCoordinator(RandomnessCoordinator):
    def __init__(self, first_request_id: int = 1):
        self.requests: list[dict] = []
        self.error: Exception | None = None
        self._next_id = first_request_id

    def request_random_words(self, **kwargs) -> int:
        if self.error is not None:
            raise self.error
        self.requests.append(kwargs)
        request_id = self._next_id
        self._next_id += 1
        return request_id


class DummyPayouts(PayoutGateway):
    def __init__(self):
        self.transfers: list[tuple[str, int]] = []
        self.accept = True
        self.error: Exception | None = None

    def transfer(self, recipient: str, amount: int) -> bool:
        if self.error is not None:
            raise self.error
        if not self.accept:
            return False
        self.transfers.append((recipient, amount))
        return True


def make_config(**overrides) -> LotteryConfig:
    params = dict(
        entry_fee=100,
        interval=timedelta(seconds=30),
        key_hash="0xkeyhash",
        subscription_id=7,
        callback_gas_limit=500_000,
        coordinator_address=COORDINATOR,
    )
    params.update(overrides)
    return LotteryConfig(**params)


class LotteryEngineTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.db_engine)
        self.Session = get_sessionmaker(self.db_engine)
        self.session = self.Session()
        self.coordinator = DummyCoordinator()
        self.payouts = DummyPayouts()
        self.lottery = self._make_lottery(self.session)
        self.lottery.open(now=T0)

    def tearDown(self) -> None:
        self.session.close()
        self.db_engine.dispose()

    def _make_lottery(self, session, config=None) -> LotteryEngine:
        return LotteryEngine(
            session,
            config or make_config(),
            coordinator=self.coordinator,
            payouts=self.payouts,
            clock=lambda: T0,
        )

    def _start_draw(self, *participants: str) -> DrawRequest:
        for participant in participants:
            self.lottery.enter(participant, 100)
        return self.lottery.request_draw(now=T0 + timedelta(seconds=31))


class EntryTests(LotteryEngineTestCase):
    def test_enter_appends_slot_and_grows_pool(self) -> None:
        entry = self.lottery.enter("alice", 100)

        self.assertEqual(entry.slot, 0)
        self.assertEqual(entry.round_number, 1)
        self.assertEqual(self.lottery.entries(), ["alice"])
        self.assertEqual(self.lottery.entry_at(0), "alice")
        self.assertEqual(self.lottery.pool_balance(), 100)

        events = self.lottery.events(ENTRY_RECORDED)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].payload, {"participant": "alice", "slot": 0})

    def test_overpayment_goes_into_pool(self) -> None:
        self.lottery.enter("alice", 150)
        self.assertEqual(self.lottery.pool_balance(), 150)

    def test_entries_keep_order(self) -> None:
        for participant in ["alice", "bob", "carol", "bob"]:
            self.lottery.enter(participant, 100)
        self.assertEqual(self.lottery.entries(), ["alice", "bob", "carol", "bob"])
        self.assertEqual(self.lottery.entry_count(), 4)
        self.assertEqual(self.lottery.entry_at(3), "bob")

    def test_insufficient_payment_changes_nothing(self) -> None:
        with self.assertRaises(InsufficientPayment) as ctx:
            self.lottery.enter("alice", 50)

        self.assertEqual(ctx.exception.paid, 50)
        self.assertEqual(ctx.exception.required, 100)
        self.assertEqual(self.lottery.entry_count(), 0)
        self.assertEqual(self.lottery.pool_balance(), 0)
        self.assertEqual(self.lottery.events(), [])

    def test_entry_rejected_while_calculating_regardless_of_payment(self) -> None:
        self._start_draw("alice")

        for amount in (100, 50, 10_000):
            with self.assertRaises(RoundNotOpen) as ctx:
                self.lottery.enter("bob", amount)
            self.assertEqual(ctx.exception.state, RoundState.CALCULATING)

        self.assertEqual(self.lottery.entries(), ["alice"])
        self.assertEqual(self.lottery.pool_balance(), 100)
        self.assertEqual(len(self.lottery.events(ENTRY_RECORDED)), 1)

    def test_enter_validates_arguments(self) -> None:
        with self.assertRaises(ValueError):
            self.lottery.enter("   ", 100)
        with self.assertRaises(ValueError):
            self.lottery.enter("alice", -1)
        with self.assertRaises(TypeError):
            self.lottery.enter("alice", "100")  # type: ignore[arg-type]
        self.assertEqual(self.lottery.entry_count(), 0)

    def test_entry_at_out_of_range(self) -> None:
        self.lottery.enter("alice", 100)
        with self.assertRaises(IndexError):
            self.lottery.entry_at(1)
        with self.assertRaises(IndexError):
            self.lottery.entry_at(-1)


class UpkeepTests(LotteryEngineTestCase):
    def test_not_ready_before_interval(self) -> None:
        self.lottery.enter("alice", 100)
        self.lottery.enter("bob", 100)

        status = self.lottery.check_upkeep(now=T0)
        self.assertFalse(status.ready)
        self.assertEqual(status.balance, 200)
        self.assertEqual(status.entry_count, 2)
        self.assertFalse(self.lottery.evaluate(now=T0 + timedelta(seconds=29)))
        self.assertTrue(self.lottery.evaluate(now=T0 + timedelta(seconds=30)))
        self.assertTrue(self.lottery.evaluate(now=T0 + timedelta(seconds=31)))

    def test_not_ready_without_entries(self) -> None:
        self.assertFalse(self.lottery.evaluate(now=T0 + timedelta(hours=1)))

    def test_not_ready_with_zero_balance(self) -> None:
        free = self._make_lottery(self.session, make_config(entry_fee=0))
        free.enter("alice", 0)

        status = free.check_upkeep(now=T0 + timedelta(hours=1))
        self.assertFalse(status.ready)
        self.assertEqual(status.entry_count, 1)
        self.assertEqual(status.balance, 0)

    def test_not_ready_while_calculating(self) -> None:
        self._start_draw("alice")
        status = self.lottery.check_upkeep(now=T0 + timedelta(hours=1))
        self.assertFalse(status.ready)
        self.assertEqual(status.state, RoundState.CALCULATING)

    def test_evaluate_has_no_side_effects(self) -> None:
        self.lottery.enter("alice", 100)
        later = T0 + timedelta(seconds=31)
        results = [self.lottery.evaluate(now=later) for _ in range(5)]

        self.assertEqual(results, [True] * 5)
        self.assertEqual(self.lottery.state(), RoundState.OPEN)
        self.assertEqual(self.coordinator.requests, [])
        self.assertEqual(len(self.lottery.events()), 1)

    def test_uses_clock_when_now_omitted(self) -> None:
        self.lottery.enter("alice", 100)
        # The engine clock is frozen at T0.
        self.assertFalse(self.lottery.evaluate())


class RequestDrawTests(LotteryEngineTestCase):
    def test_request_draw_closes_round_and_issues_one_request(self) -> None:
        draw = self._start_draw("alice")

        self.assertEqual(self.lottery.state(), RoundState.CALCULATING)
        self.assertEqual(
            self.coordinator.requests,
            [
                {
                    "key_hash": "0xkeyhash",
                    "subscription_id": 7,
                    "request_confirmations": 3,
                    "callback_gas_limit": 500_000,
                    "num_words": 1,
                }
            ],
        )
        self.assertEqual(draw.request_id, "1")
        self.assertEqual(draw.status, "pending")
        self.assertEqual(self.lottery.pending_request_id(), 1)

        events = self.lottery.events(DRAW_REQUESTED)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].payload, {"request_id": "1"})

    def test_second_request_fails_until_resolved(self) -> None:
        self._start_draw("alice")

        with self.assertRaises(DrawNotReady) as ctx:
            self.lottery.request_draw(now=T0 + timedelta(minutes=5))

        self.assertEqual(ctx.exception.state, RoundState.CALCULATING)
        self.assertEqual(len(self.coordinator.requests), 1)
        self.assertEqual(self.lottery.pending_request_id(), 1)

    def test_request_with_empty_registry_reports_diagnostics(self) -> None:
        with self.assertRaises(DrawNotReady) as ctx:
            self.lottery.request_draw(now=T0 + timedelta(seconds=31))

        self.assertEqual(ctx.exception.balance, 0)
        self.assertEqual(ctx.exception.entry_count, 0)
        self.assertEqual(ctx.exception.state, RoundState.OPEN)
        self.assertEqual(self.coordinator.requests, [])

    def test_request_before_interval_fails(self) -> None:
        self.lottery.enter("alice", 100)
        with self.assertRaises(DrawNotReady):
            self.lottery.request_draw(now=T0 + timedelta(seconds=10))
        self.assertEqual(self.lottery.state(), RoundState.OPEN)

    def test_coordinator_failure_leaves_round_open(self) -> None:
        self.lottery.enter("alice", 100)
        self.coordinator.error = ConnectionError("coordinator unreachable")

        with self.assertRaises(RandomnessRequestFailed) as ctx:
            self.lottery.request_draw(now=T0 + timedelta(seconds=31))

        self.assertIsInstance(ctx.exception.__cause__, ConnectionError)
        self.assertEqual(self.lottery.state(), RoundState.OPEN)
        self.assertIsNone(self.lottery.pending_request_id())
        self.assertEqual(self.lottery.events(DRAW_REQUESTED), [])
        self.lottery.enter("bob", 100)
        self.assertEqual(self.lottery.entries(), ["alice", "bob"])


class ResolveTests(LotteryEngineTestCase):
    def test_single_entrant_round_trip(self) -> None:
        self.lottery.enter("alice", 100)
        self.assertTrue(self.lottery.evaluate(now=T0 + timedelta(seconds=31)))
        draw = self.lottery.request_draw(now=T0 + timedelta(seconds=31))

        resolved_at = T0 + timedelta(seconds=40)
        result = self.lottery.resolve(COORDINATOR, 1, [7], now=resolved_at)

        self.assertIs(result, draw)
        self.assertEqual(result.winner, "alice")
        self.assertEqual(result.winner_index, 0)
        self.assertEqual(result.prize, 100)
        self.assertEqual(result.status, "fulfilled")
        self.assertEqual(self.payouts.transfers, [("alice", 100)])
        self.assertEqual(self.lottery.entries(), [])
        self.assertEqual(self.lottery.state(), RoundState.OPEN)
        self.assertEqual(self.lottery.recent_winner(), "alice")
        self.assertEqual(self.lottery.last_draw_at(), resolved_at)
        self.assertEqual(self.lottery.pool_balance(), 0)
        self.assertIsNone(self.lottery.pending_request_id())
        self.assertEqual(self.lottery.round_number(), 2)

        events = self.lottery.events(WINNER_PICKED)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].round_number, 1)
        self.assertEqual(
            events[0].payload,
            {"prize": 100, "request_id": "1", "winner": "alice"},
        )

    def test_winner_index_is_word_mod_entry_count(self) -> None:
        self._start_draw("alice", "bob", "carol")
        result = self.lottery.resolve(COORDINATOR, 1, [4, 99])
        self.assertEqual(result.winner_index, 1)
        self.assertEqual(result.winner, "bob")
        self.assertEqual(self.payouts.transfers, [("bob", 300)])

    def test_full_width_random_word(self) -> None:
        self._start_draw("alice", "bob", "carol")
        word = 2**256 - 1
        result = self.lottery.resolve(COORDINATOR, 1, [word])
        self.assertEqual(result.winner_index, word % 3)
        self.assertEqual(result.random_word, str(word))

    def test_duplicate_entries_win_with_either_slot(self) -> None:
        self._start_draw("alice", "alice")
        self.assertEqual(self.lottery.entries(), ["alice", "alice"])

        result = self.lottery.resolve(COORDINATOR, 1, [1])
        self.assertEqual(result.winner, "alice")
        self.assertEqual(self.payouts.transfers, [("alice", 200)])

    def test_repeat_entries_occupy_more_slots(self) -> None:
        # Two of three slots belong to alice, so two of three words pick her.
        winners = []
        for round_index, word in enumerate([0, 1, 2]):
            start = self.lottery.last_draw_at()
            for participant in ["alice", "alice", "bob"]:
                self.lottery.enter(participant, 100)
            self.lottery.request_draw(now=start + timedelta(seconds=31))
            result = self.lottery.resolve(
                COORDINATOR,
                round_index + 1,
                [word],
                now=start + timedelta(seconds=40),
            )
            winners.append(result.winner)
        self.assertEqual(winners, ["alice", "alice", "bob"])

    def test_coordinator_address_is_case_insensitive(self) -> None:
        self._start_draw("alice")
        result = self.lottery.resolve(COORDINATOR.lower(), 1, [0])
        self.assertEqual(result.winner, "alice")

    def test_unauthorized_caller_changes_nothing(self) -> None:
        self._start_draw("alice")

        with self.assertRaises(CallerNotAuthorized) as ctx:
            self.lottery.resolve("0xmallory", 1, [0])

        self.assertEqual(ctx.exception.caller, "0xmallory")
        self.assertEqual(self.lottery.state(), RoundState.CALCULATING)
        self.assertEqual(self.lottery.entries(), ["alice"])
        self.assertEqual(self.payouts.transfers, [])

    def test_unknown_request_id_rejected(self) -> None:
        self._start_draw("alice")
        with self.assertRaises(UnknownDrawRequest):
            self.lottery.resolve(COORDINATOR, 999, [0])
        self.assertEqual(self.lottery.state(), RoundState.CALCULATING)

    def test_resolve_without_pending_request_rejected(self) -> None:
        self.lottery.enter("alice", 100)
        with self.assertRaises(UnknownDrawRequest):
            self.lottery.resolve(COORDINATOR, 1, [0])
        self.assertEqual(self.lottery.entries(), ["alice"])

    def test_request_is_resolved_only_once(self) -> None:
        self._start_draw("alice")
        self.lottery.resolve(COORDINATOR, 1, [0])

        with self.assertRaises(UnknownDrawRequest):
            self.lottery.resolve(COORDINATOR, 1, [0])
        self.assertEqual(len(self.payouts.transfers), 1)

    def test_empty_random_words_rejected(self) -> None:
        self._start_draw("alice")
        with self.assertRaises(ValueError):
            self.lottery.resolve(COORDINATOR, 1, [])
        self.assertEqual(self.lottery.state(), RoundState.CALCULATING)

    def test_empty_registry_is_an_invariant_violation(self) -> None:
        self._start_draw("alice")
        self.session.execute(delete(LotteryEntry))

        with self.assertRaises(InvariantViolation):
            self.lottery.resolve(COORDINATOR, 1, [0])

        self.assertEqual(self.lottery.state(), RoundState.CALCULATING)
        self.assertEqual(self.lottery.pool_balance(), 100)
        self.assertEqual(self.payouts.transfers, [])

    def test_state_is_reset_before_payout(self) -> None:
        lottery = self.lottery
        observed = {}

        class InspectingPayouts(PayoutGateway):
            def transfer(self, recipient: str, amount: int) -> bool:
                observed["state"] = lottery.state()
                observed["entries"] = lottery.entries()
                observed["recent_winner"] = lottery.recent_winner()
                observed["pool_balance"] = lottery.pool_balance()
                observed["amount"] = amount
                return True

        self.lottery._payouts = InspectingPayouts()
        self._start_draw("alice", "bob")
        self.lottery.resolve(COORDINATOR, 1, [1])

        self.assertEqual(
            observed,
            {
                "state": RoundState.OPEN,
                "entries": [],
                "recent_winner": "bob",
                "pool_balance": 0,
                "amount": 200,
            },
        )

    def test_new_round_starts_after_resolution(self) -> None:
        self._start_draw("alice")
        resolved_at = T0 + timedelta(minutes=1)
        self.lottery.resolve(COORDINATOR, 1, [0], now=resolved_at)

        entry = self.lottery.enter("bob", 100)
        self.assertEqual(entry.round_number, 2)
        self.assertEqual(entry.slot, 0)
        self.assertEqual(self.lottery.entries(), ["bob"])
        self.assertFalse(self.lottery.evaluate(now=resolved_at + timedelta(seconds=29)))
        self.assertTrue(self.lottery.evaluate(now=resolved_at + timedelta(seconds=30)))
        self.assertEqual(self.lottery.recent_winner(), "alice")


class PayoutFailureTests(LotteryEngineTestCase):
    def _snapshot(self) -> dict:
        draw = DrawRequest.get_by_request_id(self.session, 1)
        return {
            "state": self.lottery.state(),
            "entries": self.lottery.entries(),
            "pool_balance": self.lottery.pool_balance(),
            "recent_winner": self.lottery.recent_winner(),
            "last_draw_at": self.lottery.last_draw_at(),
            "pending_request_id": self.lottery.pending_request_id(),
            "round_number": self.lottery.round_number(),
            "draw_status": draw.status if draw else None,
            "draw_winner": draw.winner if draw else None,
            "events": [event.name for event in self.lottery.events()],
        }

    def test_rejected_payout_rolls_back_everything(self) -> None:
        self._start_draw("alice", "bob")
        before = self._snapshot()
        self.payouts.accept = False

        with self.assertRaises(PayoutTransferFailed) as ctx:
            self.lottery.resolve(COORDINATOR, 1, [0], now=T0 + timedelta(minutes=1))

        self.assertEqual(ctx.exception.winner, "alice")
        self.assertEqual(ctx.exception.amount, 200)
        self.assertEqual(self._snapshot(), before)
        self.assertEqual(before["state"], RoundState.CALCULATING)
        self.assertEqual(before["last_draw_at"], T0)

    def test_payout_error_rolls_back_and_chains_cause(self) -> None:
        self._start_draw("alice")
        before = self._snapshot()
        self.payouts.error = ConnectionError("wallet offline")

        with self.assertRaises(PayoutTransferFailed) as ctx:
            self.lottery.resolve(COORDINATOR, 1, [0])

        self.assertIsInstance(ctx.exception.__cause__, ConnectionError)
        self.assertEqual(self._snapshot(), before)

    def test_resolution_can_be_retried_after_failed_payout(self) -> None:
        self._start_draw("alice")
        self.payouts.accept = False
        with self.assertRaises(PayoutTransferFailed):
            self.lottery.resolve(COORDINATOR, 1, [0])

        self.payouts.accept = True
        result = self.lottery.resolve(COORDINATOR, 1, [0])
        self.assertEqual(result.winner, "alice")
        self.assertEqual(self.payouts.transfers, [("alice", 100)])
        self.assertEqual(self.lottery.state(), RoundState.OPEN)

    def test_failed_payout_survives_commit_unchanged(self) -> None:
        self._start_draw("alice")
        self.session.commit()
        self.payouts.accept = False
        with self.assertRaises(PayoutTransferFailed):
            self.lottery.resolve(COORDINATOR, 1, [0])
        self.session.commit()
        self.session.close()

        with self.Session() as session:
            reloaded = self._make_lottery(session)
            self.assertEqual(reloaded.state(), RoundState.CALCULATING)
            self.assertEqual(reloaded.entries(), ["alice"])
            self.assertEqual(reloaded.pool_balance(), 100)
            self.assertIsNone(reloaded.recent_winner())
            self.assertEqual(reloaded.last_draw_at(), T0)


class LifecycleTests(LotteryEngineTestCase):
    def test_open_is_idempotent(self) -> None:
        self.lottery.enter("alice", 100)
        lottery_row = self.lottery.open(now=T0 + timedelta(days=1))
        self.assertEqual(lottery_row.round_number, 1)
        self.assertEqual(self.lottery.last_draw_at(), T0)
        self.assertEqual(self.lottery.entries(), ["alice"])

    def test_operations_require_open_lottery(self) -> None:
        self.session.close()
        with self.Session() as session:
            session.execute(delete(Base.metadata.tables["lotteries"]))
            unopened = self._make_lottery(session)
            with self.assertRaises(LotteryNotOpened):
                unopened.enter("alice", 100)
            with self.assertRaises(LotteryNotOpened):
                unopened.evaluate()
            with self.assertRaises(LotteryNotOpened):
                unopened.state()

    def test_initial_state(self) -> None:
        self.assertEqual(self.lottery.state(), RoundState.OPEN)
        self.assertEqual(self.lottery.round_number(), 1)
        self.assertEqual(self.lottery.entries(), [])
        self.assertEqual(self.lottery.pool_balance(), 0)
        self.assertIsNone(self.lottery.recent_winner())
        self.assertIsNone(self.lottery.pending_request_id())
        self.assertEqual(self.lottery.last_draw_at(), T0)

    def test_configuration_accessors(self) -> None:
        self.assertEqual(self.lottery.entry_fee, 100)
        self.assertEqual(self.lottery.interval, timedelta(seconds=30))
        self.assertEqual(self.lottery.subscription_id, 7)
        self.assertEqual(self.lottery.num_words, 1)
        self.assertEqual(self.lottery.request_confirmations, 3)
        self.assertEqual(self.lottery.coordinator_address, COORDINATOR)

    def test_state_persists_across_sessions(self) -> None:
        self.lottery.enter("alice", 100)
        self.lottery.enter("bob", 100)
        self.session.commit()
        self.session.close()

        with self.Session() as session:
            reloaded = self._make_lottery(session)
            self.assertEqual(reloaded.entries(), ["alice", "bob"])
            self.assertEqual(reloaded.pool_balance(), 200)
            self.assertEqual(reloaded.last_draw_at(), T0)


if __name__ == "__main__":
    unittest.main()
