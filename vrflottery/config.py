"""Immutable lottery parameters."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import ClassVar, Optional

from dotenv import load_dotenv


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Environment variable '{name}' is not set")
    return value


def _int_env(name: str, default: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if not raw:
        if default is None:
            raise ValueError(f"Environment variable '{name}' is not set")
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Environment variable '{name}' must be an integer") from e


@dataclass(frozen=True)
class LotteryConfig:
    """Parameters fixed when the lottery is deployed.

    Attributes
    ----------
    entry_fee : int
        Minimum accepted payment per entry, in the smallest token unit.
    interval : timedelta
        Minimum time between the round opening and a draw being started.
    key_hash : str
        Key selector ("gas lane") passed to the randomness coordinator.
    subscription_id : int
        Coordinator subscription that pays for randomness requests.
    callback_gas_limit : int
        Gas budget the coordinator may spend delivering the random words.
    coordinator_address : str
        Identity of the only caller allowed to fulfil draw requests.
    request_confirmations : int, default: 3
        Block confirmations the coordinator waits for before responding.
    """

    NUM_WORDS: ClassVar[int] = 1

    entry_fee: int
    interval: timedelta
    key_hash: str
    subscription_id: int
    callback_gas_limit: int
    coordinator_address: str
    request_confirmations: int = 3

    def __post_init__(self) -> None:
        if self.entry_fee < 0:
            raise ValueError("entry_fee must not be negative")
        if not isinstance(self.interval, timedelta):
            raise TypeError("interval must be a timedelta")
        if self.interval < timedelta(0):
            raise ValueError("interval must not be negative")
        if not self.key_hash:
            raise ValueError("key_hash must not be empty")
        if self.callback_gas_limit <= 0:
            raise ValueError("callback_gas_limit must be positive")
        if self.request_confirmations < 0:
            raise ValueError("request_confirmations must not be negative")
        if not self.coordinator_address or not self.coordinator_address.strip():
            raise ValueError("coordinator_address must not be empty")

    @property
    def num_words(self) -> int:
        return self.NUM_WORDS

    def is_coordinator(self, caller: Optional[str]) -> bool:
        """Return ``True`` when ``caller`` is the configured coordinator.

        Addresses are compared case-insensitively so checksummed and
        lower-case forms match.
        """
        if not caller:
            return False
        return caller.strip().lower() == self.coordinator_address.strip().lower()

    @classmethod
    def from_env(cls) -> "LotteryConfig":
        """Build the configuration from environment variables (and ``.env``).

        Required: ``LOTTERY_ENTRY_FEE``, ``LOTTERY_INTERVAL_SECONDS``,
        ``VRF_KEY_HASH``, ``VRF_SUBSCRIPTION_ID``, ``VRF_COORDINATOR_ADDRESS``.
        Optional: ``VRF_CALLBACK_GAS_LIMIT`` (500000) and
        ``VRF_REQUEST_CONFIRMATIONS`` (3).
        """
        load_dotenv()
        return cls(
            entry_fee=_int_env("LOTTERY_ENTRY_FEE"),
            interval=timedelta(seconds=_int_env("LOTTERY_INTERVAL_SECONDS")),
            key_hash=_require_env("VRF_KEY_HASH"),
            subscription_id=_int_env("VRF_SUBSCRIPTION_ID"),
            callback_gas_limit=_int_env("VRF_CALLBACK_GAS_LIMIT", 500_000),
            coordinator_address=_require_env("VRF_COORDINATOR_ADDRESS"),
            request_confirmations=_int_env("VRF_REQUEST_CONFIRMATIONS", 3),
        )
