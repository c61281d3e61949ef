from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .lottery import Lottery, LotteryEntry, RoundState  # noqa: F401
from .draw import DrawRequest  # noqa: F401
from .event import (  # noqa: F401
    DRAW_REQUESTED,
    ENTRY_RECORDED,
    WINNER_PICKED,
    LotteryEvent,
)

__all__ = [
    "Base",
    "Lottery",
    "LotteryEntry",
    "RoundState",
    "DrawRequest",
    "LotteryEvent",
    "ENTRY_RECORDED",
    "DRAW_REQUESTED",
    "WINNER_PICKED",
]
