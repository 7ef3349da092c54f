"""Pure decision logic for a single guess; no I/O happens here."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Union

from .normalize import answers_match, normalize

SCORING_FIXED_POINTS = "fixed_points"
SCORING_FIRST_FINDER = "first_finder"
SCORING_MODES = (SCORING_FIXED_POINTS, SCORING_FIRST_FINDER)

DEFAULT_DAILY_CAP = 2
MIN_PLAYER_NAME_LENGTH = 2

INVALID_INPUT = "invalid_input"
UNAUTHORIZED = "unauthorized"
DUPLICATE_SUBMISSION = "duplicate_submission"
DAILY_LIMIT_REACHED = "daily_limit_reached"
NOT_YET_AVAILABLE = "not_yet_available"
NOT_FOUND = "not_found"
PERSISTENCE_FAILURE = "persistence_failure"

REJECTION_MESSAGES = {
    INVALID_INPUT: "Données manquantes",
    UNAUTHORIZED: "Code administrateur invalide",
    DUPLICATE_SUBMISSION: "Tu as déjà répondu à cet indice",
    DAILY_LIMIT_REACHED: "Tu as déjà participé aujourd'hui, reviens demain!",
    NOT_YET_AVAILABLE: "Cet indice n'est pas encore disponible",
    NOT_FOUND: "Indice non trouvé",
    PERSISTENCE_FAILURE: "Une erreur est survenue",
}

INVALID_PLAYER_NAME_MESSAGE = "Nom du joueur invalide (minimum 2 caractères)"


@dataclass(frozen=True)
class GuessRequest:
    """A guess as received by the gateway, after day coercion."""

    player_name: str
    item_id: str
    guess_text: str
    day: Optional[int]

    @property
    def player_key(self) -> str:
        return normalize(self.player_name)


@dataclass(frozen=True)
class Rejected:
    reason: str
    message: str = ""

    accepted = False

    def __post_init__(self) -> None:
        if not self.message:
            object.__setattr__(self, "message", REJECTION_MESSAGES.get(self.reason, ""))


@dataclass(frozen=True)
class Accepted:
    """`claim_first_finder` asks the store to stamp the item conditionally."""

    is_correct: bool
    is_first_finder: Optional[bool] = None
    claim_first_finder: bool = False

    accepted = True


Decision = Union[Accepted, Rejected]


def check_shape(request: GuessRequest) -> Optional[Rejected]:
    """Return a rejection when the request is missing fields or has a short name."""
    name = (request.player_name or "").strip() if isinstance(request.player_name, str) else ""
    if len(name) < MIN_PLAYER_NAME_LENGTH:
        return Rejected(INVALID_INPUT, INVALID_PLAYER_NAME_MESSAGE)
    if not (request.item_id or "").strip():
        return Rejected(INVALID_INPUT)
    if not (request.guess_text or "").strip():
        return Rejected(INVALID_INPUT)
    if request.day is None:
        return Rejected(INVALID_INPUT)
    return None


def validate(
    request: GuessRequest,
    item,
    prior_submissions: Iterable,
    *,
    scoring_mode: str = SCORING_FIXED_POINTS,
    daily_cap: int = DEFAULT_DAILY_CAP,
) -> Decision:
    """Decide whether a guess is accepted and how it scores.

    `item` is an ItemRecord (or None when the id did not resolve) and
    `prior_submissions` are the player's existing submissions on any day.
    Checks run in a fixed order: shape, duplicate, daily cap, existence,
    availability.
    """
    shape_error = check_shape(request)
    if shape_error is not None:
        return shape_error

    prior = list(prior_submissions)
    if any(sub.item_id == request.item_id for sub in prior):
        return Rejected(DUPLICATE_SUBMISSION)

    played_today = sum(1 for sub in prior if sub.day == request.day)
    if played_today >= daily_cap:
        return Rejected(DAILY_LIMIT_REACHED)

    if item is None or not item.is_active:
        return Rejected(NOT_FOUND)

    available_day = item.available_day
    if available_day is not None and available_day > request.day:
        return Rejected(NOT_YET_AVAILABLE)

    is_correct = answers_match(request.guess_text, item.answer)
    if scoring_mode != SCORING_FIRST_FINDER:
        return Accepted(is_correct=is_correct)

    claim = is_correct and item.first_finder is None
    # Final word on is_first_finder belongs to the store's conditional claim.
    return Accepted(is_correct=is_correct, is_first_finder=claim, claim_first_finder=claim)
