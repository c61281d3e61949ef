"""
Lottery exceptions.

Every domain failure raised by :class:`~vrflottery.lottery.engine.LotteryEngine`
derives from :class:`LotteryError` so callers can handle them in one place.
"""


class LotteryError(Exception):
    """Base class for lottery failures."""
    pass


# ============ Entry errors ============

class InsufficientPayment(LotteryError):
    """Payment is below the configured entry fee."""
    def __init__(self, paid: int, required: int):
        self.paid = paid
        self.required = required
        super().__init__(f"Paid {paid} but the entry fee is {required}")


class RoundNotOpen(LotteryError):
    """Entries are closed while a draw is being calculated."""
    def __init__(self, state: str):
        self.state = state
        super().__init__(f"Round is not open (state={state})")


# ============ Draw errors ============

class DrawNotReady(LotteryError):
    """A draw was requested before every upkeep condition held."""
    def __init__(self, balance: int, entry_count: int, state: str):
        self.balance = balance
        self.entry_count = entry_count
        self.state = state
        super().__init__(
            f"Draw not ready (balance={balance}, entries={entry_count}, state={state})"
        )


class RandomnessRequestFailed(LotteryError):
    """The randomness coordinator did not accept the request."""
    pass


class UnknownDrawRequest(LotteryError):
    """Fulfilment does not match the outstanding randomness request."""
    def __init__(self, request_id):
        self.request_id = request_id
        super().__init__(f"No pending draw for request {request_id}")


class CallerNotAuthorized(LotteryError):
    """Only the configured randomness coordinator may resolve a draw."""
    def __init__(self, caller: str):
        self.caller = caller
        super().__init__(f"Caller {caller!r} is not the randomness coordinator")


class PayoutTransferFailed(LotteryError):
    """The winner could not be paid; the resolution is rolled back."""
    def __init__(self, winner: str, amount: int):
        self.winner = winner
        self.amount = amount
        super().__init__(f"Transfer of {amount} to {winner} failed")


# ============ Lifecycle errors ============

class LotteryNotOpened(LotteryError):
    """The lottery row does not exist yet."""
    def __init__(self):
        super().__init__("Lottery has not been opened; call LotteryEngine.open() first")


class InvariantViolation(LotteryError):
    """Internal state contradicts the lottery invariants. Never retried."""
    pass
