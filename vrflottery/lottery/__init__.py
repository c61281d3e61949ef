"""Core of the lottery: entries, upkeep, draw requests and resolution."""

from .collaborators import PayoutGateway, RandomnessCoordinator
from .engine import LotteryEngine
from .selection import first_random_word, select_winner_index
from .upkeep import UpkeepStatus, evaluate_upkeep

__all__ = [
    "LotteryEngine",
    "PayoutGateway",
    "RandomnessCoordinator",
    "UpkeepStatus",
    "evaluate_upkeep",
    "first_random_word",
    "select_winner_index",
]
