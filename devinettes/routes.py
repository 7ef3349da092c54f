"""Public JSON API for players: today's items, guesses, progress and leaderboard."""

from __future__ import annotations

from typing import Optional

from flask import Blueprint, jsonify, request

from . import service
from .validator import INVALID_INPUT

game_api_blueprint = Blueprint(
    "game_api",
    __name__,
    url_prefix="/api",
)


@game_api_blueprint.errorhandler(service.GuessServiceError)
def _handle_service_error(exc: service.GuessServiceError):
    return jsonify(exc.payload), exc.status_code


@game_api_blueprint.get("/game")
def game_overview():
    return jsonify(service.game_overview())


@game_api_blueprint.get("/items/today")
def list_today_items():
    day = _day_from_args()
    return jsonify({"day": day, "items": service.items_for_day(day)})


@game_api_blueprint.post("/submissions")
@game_api_blueprint.post("/submit-answer")
def submit_answer():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise service.GuessRejected(INVALID_INPUT)

    result = service.submit_guess(
        payload.get("playerName"),
        _first_present(payload, "itemId", "clueId", "secretId"),
        _first_present(payload, "guessText", "response", "guessName"),
        payload.get("day"),
    )
    return jsonify(result.to_dict())


@game_api_blueprint.get("/players/<path:player_name>/submissions")
def player_submissions(player_name: str):
    day = _day_from_args()
    return jsonify(service.player_progress(player_name, day))


@game_api_blueprint.get("/leaderboard")
def get_leaderboard():
    settings = service.current_settings()
    return jsonify(
        {
            "scoring_mode": settings.scoring_mode,
            "leaderboard": service.leaderboard(settings=settings),
        }
    )


def _day_from_args() -> int:
    raw_day = _clean_or_none(request.args.get("day"))
    if raw_day is not None:
        return service.resolve_day(raw_day)
    current_day = service.current_game_day()
    if current_day is None:
        raise service.GuessRejected(INVALID_INPUT)
    return current_day


def _first_present(payload: dict, *keys: str):
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def _clean_or_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None
