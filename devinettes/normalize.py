"""Canonical forms for answers and player names."""

from __future__ import annotations

import re
import unicodedata
from typing import Optional

_WHITESPACE_RUN = re.compile(r"\s+")


def normalize(value: Optional[str]) -> str:
    """Fold case and accents, trim and collapse whitespace.

    Punctuation is left alone, so "Marie-Dupont" and "marie dupont" differ.
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", str(value))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WHITESPACE_RUN.sub(" ", stripped.lower()).strip()


def normalize_to_first_token(value: Optional[str]) -> str:
    """Normalized text up to the first space (leaderboard merging only)."""
    return normalize(value).split(" ", 1)[0]


def answers_match(guess: Optional[str], answer: Optional[str]) -> bool:
    return normalize(guess) == normalize(answer)
