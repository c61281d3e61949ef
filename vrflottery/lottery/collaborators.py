"""Interfaces for the external services the lottery engine depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod


class RandomnessCoordinator(ABC):
    """Oracle network that supplies verifiable random words asynchronously.

    The coordinator answers each accepted request exactly once by calling
    :meth:`LotteryEngine.resolve` with its own address as the caller.
    """

    @abstractmethod
    def request_random_words(
        self,
        *,
        key_hash: str,
        subscription_id: int,
        request_confirmations: int,
        callback_gas_limit: int,
        num_words: int,
    ) -> int:
        """Submit a randomness request and return its request id.

        Raises
        ------
        Exception
            Any failure to submit; the engine rolls back the draw start.
        """
        ...


class PayoutGateway(ABC):
    """Moves the prize pool to the winner."""

    @abstractmethod
    def transfer(self, recipient: str, amount: int) -> bool:
        """Transfer ``amount`` to ``recipient`` in one operation.

        Returns
        -------
        bool
            ``True`` when the transfer was accepted, ``False`` when the
            recipient rejected it.
        """
        ...


__all__ = ["PayoutGateway", "RandomnessCoordinator"]
