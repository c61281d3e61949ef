"""Helpers for mapping a random word onto an entry slot."""

from __future__ import annotations

from typing import Sequence

from ..exceptions import InvariantViolation


def first_random_word(random_words: Sequence[int]) -> int:
    """Return the word used for selection; extra words are ignored.

    Parameters
    ----------
    random_words : Sequence[int]
        Words delivered by the randomness coordinator.
    """

    if not random_words:
        raise ValueError("random_words must not be empty")
    word = random_words[0]
    if isinstance(word, bool) or not isinstance(word, int):
        raise TypeError("random words must be integers")
    if word < 0:
        raise ValueError("random words must not be negative")
    return word


def select_winner_index(random_word: int, entry_count: int) -> int:
    """Map ``random_word`` uniformly onto ``entry_count`` slots.

    Selection is over slots, not unique participants.

    Raises
    ------
    InvariantViolation
        If there are no slots to choose from.
    """

    if entry_count <= 0:
        raise InvariantViolation("Cannot select a winner from an empty registry")
    return random_word % entry_count


__all__ = ["first_random_word", "select_winner_index"]
