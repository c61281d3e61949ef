from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import LotteryConfig
from .lottery.engine import LotteryEngine
from .models import DrawRequest

if TYPE_CHECKING:
    from .blockchain.api import ChainClient


def create_engine_from_env(
    session: Session,
    *,
    config: Optional[LotteryConfig] = None,
    client: Optional["ChainClient"] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> LotteryEngine:
    """Build a :class:`LotteryEngine` wired to the chain service.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session the engine operates on.
    config : Optional[LotteryConfig]
        Lottery parameters. Read from the environment when omitted.
    client : Optional[ChainClient]
        Optional pre-configured :class:`~vrflottery.blockchain.api.ChainClient`
        used both as randomness coordinator and payout gateway. If not
        provided, a default one will be created.
    clock : Optional[Callable[[], datetime]]
        Time source forwarded to the engine.

    Returns
    -------
    LotteryEngine
        Engine ready for use; call :meth:`LotteryEngine.open` once per database.
    """
    if config is None:
        config = LotteryConfig.from_env()

    if client is None:
        from .blockchain.api import ChainClient

        client = ChainClient()

    return LotteryEngine(
        session,
        config,
        coordinator=client,
        payouts=client,
        clock=clock,
    )


def run_upkeep(
    engine: LotteryEngine, now: Optional[datetime] = None
) -> Optional[DrawRequest]:
    """Run one automation tick.

    Starts a draw when the upkeep check passes and returns the new request;
    otherwise returns ``None`` without touching any state. Intended to be
    called periodically by a scheduler or by hand as a fallback.
    """
    if not engine.evaluate(now):
        return None
    return engine.request_draw(now)


def list_draw_history(
    session: Session, limit: Optional[int] = None
) -> list[DrawRequest]:
    """Return fulfilled draws, newest first.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    limit : Optional[int]
        Maximum number of draws to return. ``None`` returns all of them.
    """
    stmt = (
        select(DrawRequest)
        .where(DrawRequest.status == "fulfilled")
        .order_by(DrawRequest.round_number.desc(), DrawRequest.id.desc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(session.scalars(stmt))
