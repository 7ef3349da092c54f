"""Submission gateway and read helpers shared by the player and admin blueprints."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser
from flask import current_app

from .normalize import normalize
from .scoring import (
    DEFAULT_POINTS_PER_CORRECT,
    DEFAULT_POINTS_PER_FIRST_FIND,
    build_leaderboard,
)
from .store import DuplicateSubmissionError, StoreError, SubmissionRecord, get_store
from .validator import (
    DAILY_LIMIT_REACHED,
    DEFAULT_DAILY_CAP,
    DUPLICATE_SUBMISSION,
    INVALID_INPUT,
    INVALID_PLAYER_NAME_MESSAGE,
    NOT_FOUND,
    NOT_YET_AVAILABLE,
    PERSISTENCE_FAILURE,
    REJECTION_MESSAGES,
    SCORING_FIRST_FINDER,
    SCORING_FIXED_POINTS,
    SCORING_MODES,
    UNAUTHORIZED,
    GuessRequest,
    Rejected,
    check_shape,
    validate,
)

DEFAULT_MAX_ITEMS = 20
DEFAULT_TIMEZONE = "Europe/Paris"

# Business rejections answer 200 with success=false.
REJECTION_STATUS = {
    INVALID_INPUT: 400,
    UNAUTHORIZED: 401,
    NOT_FOUND: 404,
    DUPLICATE_SUBMISSION: 200,
    DAILY_LIMIT_REACHED: 200,
    NOT_YET_AVAILABLE: 200,
    PERSISTENCE_FAILURE: 500,
}


class GuessServiceError(Exception):
    """Raised when a guess or admin operation fails."""

    def __init__(self, message: str, status_code: int = 400, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {"success": False, "error": message}


class GuessRejected(GuessServiceError):
    """A terminal rejection carrying one of the validator's reason codes."""

    def __init__(self, reason: str, message: Optional[str] = None):
        text = message or REJECTION_MESSAGES.get(reason, REJECTION_MESSAGES[PERSISTENCE_FAILURE])
        super().__init__(
            text,
            status_code=REJECTION_STATUS.get(reason, 400),
            payload={"success": False, "error": text, "reason": reason},
        )
        self.reason = reason

    @classmethod
    def from_decision(cls, decision: Rejected) -> "GuessRejected":
        return cls(decision.reason, decision.message)


@dataclass(frozen=True)
class GameSettings:
    scoring_mode: str = SCORING_FIXED_POINTS
    points_per_correct: int = DEFAULT_POINTS_PER_CORRECT
    points_per_first_find: int = DEFAULT_POINTS_PER_FIRST_FIND
    daily_cap: int = DEFAULT_DAILY_CAP
    max_items: int = DEFAULT_MAX_ITEMS
    merge_first_name: bool = False
    timezone: str = DEFAULT_TIMEZONE

    @property
    def first_finder_mode(self) -> bool:
        return self.scoring_mode == SCORING_FIRST_FINDER

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "GameSettings":
        mode = str(config.get("SCORING_MODE") or SCORING_FIXED_POINTS).strip().lower()
        if mode not in SCORING_MODES:
            mode = SCORING_FIXED_POINTS
        return cls(
            scoring_mode=mode,
            points_per_correct=_int_setting(config, "POINTS_PER_CORRECT", DEFAULT_POINTS_PER_CORRECT),
            points_per_first_find=_int_setting(config, "POINTS_PER_FIRST_FIND", DEFAULT_POINTS_PER_FIRST_FIND),
            daily_cap=max(1, _int_setting(config, "DAILY_SUBMISSION_CAP", DEFAULT_DAILY_CAP)),
            max_items=max(1, _int_setting(config, "MAX_ITEMS", DEFAULT_MAX_ITEMS)),
            merge_first_name=bool(config.get("LEADERBOARD_MERGE_FIRST_NAME", False)),
            timezone=str(config.get("GAME_TIMEZONE") or DEFAULT_TIMEZONE),
        )


def current_settings() -> GameSettings:
    return GameSettings.from_config(current_app.config)


@dataclass(frozen=True)
class SubmissionResult:
    is_correct: bool
    is_first_finder: Optional[bool]
    submission_id: Optional[str]

    def to_dict(self) -> dict:
        payload: Dict[str, Any] = {
            "success": True,
            "isCorrect": self.is_correct,
            "answerId": self.submission_id,
        }
        if self.is_first_finder is not None:
            payload["isFirstFinder"] = self.is_first_finder
        return payload


def submit_guess(
    player_name: Any,
    item_id: Any,
    guess_text: Any,
    day: Any,
    *,
    store=None,
    settings: Optional[GameSettings] = None,
) -> SubmissionResult:
    """Validate, score and persist one guess.

    Raises GuessRejected for every outcome other than an accepted guess.
    This is the only code path that writes submissions or first finders.
    """
    store = store or get_store()
    settings = settings or current_settings()

    request = GuessRequest(
        player_name=player_name if isinstance(player_name, str) else "",
        item_id=str(item_id).strip() if item_id not in (None, "") else "",
        guess_text=guess_text if isinstance(guess_text, str) else "",
        day=None,
    )
    shape_error = check_shape(_with_day(request, 0))
    if shape_error is not None:
        raise GuessRejected.from_decision(shape_error)

    played_day = resolve_day(day, store=store)
    request = _with_day(request, played_day)

    current_day = current_game_day(store=store, settings=settings)
    if current_day is not None and played_day > current_day:
        raise GuessRejected(NOT_YET_AVAILABLE)

    player_key = request.player_key
    try:
        item = store.get_item(request.item_id)
        prior = store.list_submissions(player_key=player_key)
    except StoreError as exc:
        raise GuessRejected(PERSISTENCE_FAILURE) from exc

    decision = validate(
        request,
        item,
        prior,
        scoring_mode=settings.scoring_mode,
        daily_cap=settings.daily_cap,
    )
    if isinstance(decision, Rejected):
        raise GuessRejected.from_decision(decision)

    submission = SubmissionRecord(
        id=None,
        player_key=player_key,
        player_name=request.player_name.strip(),
        item_id=request.item_id,
        day=played_day,
        guess_text=request.guess_text.strip(),
        is_correct=decision.is_correct,
        is_first_finder=False if settings.first_finder_mode else None,
    )
    try:
        stored, claimed = store.record_submission(
            submission,
            claim_first_finder=decision.claim_first_finder,
        )
    except DuplicateSubmissionError as exc:
        raise GuessRejected(DUPLICATE_SUBMISSION) from exc
    except StoreError as exc:
        current_app.logger.error("Persisting guess for %s failed: %s", player_key, exc)
        raise GuessRejected(PERSISTENCE_FAILURE) from exc

    is_first_finder = claimed if settings.first_finder_mode else None
    current_app.logger.info(
        "Guess submitted: %s -> %s%s",
        player_key,
        "correct" if decision.is_correct else "incorrect",
        " (first finder)" if is_first_finder else "",
    )
    return SubmissionResult(
        is_correct=decision.is_correct,
        is_first_finder=is_first_finder,
        submission_id=stored.id,
    )


def resolve_day(raw_day: Any, *, store=None) -> int:
    """Coerce a day number or ISO date into a game day number (day 1 = season start)."""
    if raw_day is None or raw_day == "" or isinstance(raw_day, bool):
        raise GuessRejected(INVALID_INPUT)
    if isinstance(raw_day, int):
        return _positive_day(raw_day)
    if isinstance(raw_day, float):
        # JSON clients may send 3.0 for day 3.
        if not raw_day.is_integer():
            raise GuessRejected(INVALID_INPUT)
        return _positive_day(int(raw_day))
    text = str(raw_day).strip()
    if text.isdigit():
        return _positive_day(int(text))

    try:
        played = date_parser.isoparse(text).date()
    except (TypeError, ValueError, OverflowError):
        raise GuessRejected(INVALID_INPUT)
    start = _season_start(store or get_store())
    if start is None:
        raise GuessRejected(INVALID_INPUT, "Date de début du jeu non configurée")
    return _positive_day((played - start).days + 1)


def current_game_day(*, store=None, settings: Optional[GameSettings] = None) -> Optional[int]:
    """Today's day number in the game timezone, or None without a season start."""
    settings = settings or current_settings()
    start = _season_start(store or get_store())
    if start is None:
        return None
    return (_today(settings) - start).days + 1


def items_for_day(day: int, *, store=None) -> List[dict]:
    store = store or get_store()
    try:
        records = store.list_items_for_day(day)
    except StoreError as exc:
        raise GuessRejected(PERSISTENCE_FAILURE) from exc
    return [record.to_public_dict() for record in records]


def player_progress(player_name: str, day: int, *, store=None, settings: Optional[GameSettings] = None) -> dict:
    """A player's submissions for the day and whether the daily cap is reached."""
    store = store or get_store()
    settings = settings or current_settings()
    player_key = normalize(player_name)
    if len(player_key) < 2:
        raise GuessRejected(INVALID_INPUT, INVALID_PLAYER_NAME_MESSAGE)
    try:
        submissions = store.list_submissions(player_key=player_key, day=day)
    except StoreError as exc:
        raise GuessRejected(PERSISTENCE_FAILURE) from exc
    return {
        "player": player_key,
        "day": day,
        "submissions": [sub.to_dict() for sub in submissions],
        "completed": len(submissions) >= settings.daily_cap,
        "remaining": max(0, settings.daily_cap - len(submissions)),
    }


def leaderboard(*, store=None, settings: Optional[GameSettings] = None) -> List[dict]:
    store = store or get_store()
    settings = settings or current_settings()
    try:
        submissions = store.list_submissions()
        items = store.list_items() if settings.first_finder_mode else []
    except StoreError as exc:
        raise GuessRejected(PERSISTENCE_FAILURE) from exc
    entries = build_leaderboard(
        submissions,
        items,
        mode=settings.scoring_mode,
        points_per_correct=settings.points_per_correct,
        points_per_first_find=settings.points_per_first_find,
        merge_first_name=settings.merge_first_name,
    )
    return [entry.to_dict() for entry in entries]


def game_overview(*, store=None, settings: Optional[GameSettings] = None) -> dict:
    store = store or get_store()
    settings = settings or current_settings()
    try:
        config = store.get_game_config()
    except StoreError as exc:
        raise GuessRejected(PERSISTENCE_FAILURE) from exc
    return {
        "current_day": current_game_day(store=store, settings=settings),
        "start_date": _isoformat(config.get("start_date")),
        "end_date": _isoformat(config.get("end_date")),
        "scoring_mode": settings.scoring_mode,
        "daily_cap": settings.daily_cap,
        "points_per_correct": settings.points_per_correct,
    }


def parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date_parser.isoparse(str(value)).date()


def _season_start(store) -> Optional[date]:
    try:
        config = store.get_game_config()
    except StoreError as exc:
        raise GuessRejected(PERSISTENCE_FAILURE) from exc
    try:
        return parse_date(config.get("start_date"))
    except (TypeError, ValueError):
        return None


def _today(settings: GameSettings) -> date:
    try:
        tz = ZoneInfo(settings.timezone)
    except Exception:
        tz = timezone.utc
    return datetime.now(tz=tz).date()


def _with_day(request: GuessRequest, day: int) -> GuessRequest:
    return GuessRequest(request.player_name, request.item_id, request.guess_text, day)


def _positive_day(value: int) -> int:
    if value < 1:
        raise GuessRejected(INVALID_INPUT)
    return value


def _isoformat(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _int_setting(config: Mapping[str, Any], key: str, default: int) -> int:
    try:
        return int(config.get(key, default))
    except (TypeError, ValueError):
        return default
