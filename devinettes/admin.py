"""Admin JSON endpoints: code check, item/hint CRUD, day assignments, stats."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

import bleach
from flask import Blueprint, current_app, jsonify, request

from . import service
from .scoring import build_admin_stats, build_leaderboard
from .store import StoreError, get_store
from .validator import NOT_FOUND, PERSISTENCE_FAILURE, UNAUTHORIZED

CodeChecker = Callable[[Optional[str]], bool]
CodeConfigured = Callable[[], bool]

VALID_ORDINALS = (1, 2)
MAX_ITEMS_PER_DAY = 2
MAX_TEXT_LENGTH = 2000


def create_admin_blueprint(code_checker: CodeChecker, code_configured: CodeConfigured) -> Blueprint:
    """Factory so app.py keeps ownership of the shared admin secret."""

    bp = Blueprint("admin_game", __name__, url_prefix="/api/admin")

    @bp.errorhandler(service.GuessServiceError)
    def _handle_service_error(exc: service.GuessServiceError):
        return jsonify(exc.payload), exc.status_code

    def _require_code(payload: dict) -> None:
        if not code_checker(payload.get("adminCode")):
            current_app.logger.warning("Admin code rejected for %s", request.path)
            raise service.GuessRejected(UNAUTHORIZED)

    @bp.post("/verify")
    def verify_code():
        payload = _json_payload()
        if not code_configured():
            current_app.logger.error("Admin code is not configured")
            return jsonify({"valid": False, "error": "Configuration error"}), 500
        return jsonify({"valid": code_checker(payload.get("code"))})

    @bp.post("/items")
    def manage_items():
        payload = _json_payload()
        _require_code(payload)

        action = payload.get("action")
        handler = ITEM_ACTIONS.get(action) if isinstance(action, str) else None
        if handler is None:
            raise service.GuessServiceError("Action inconnue", status_code=400)

        store = get_store()
        settings = service.current_settings()
        try:
            result = handler(payload, store, settings)
        except StoreError as exc:
            current_app.logger.error("Admin action %s failed: %s", action, exc)
            raise service.GuessRejected(PERSISTENCE_FAILURE) from exc
        return jsonify({"success": True, **result})

    @bp.post("/stats")
    def admin_stats():
        payload = _json_payload()
        _require_code(payload)

        store = get_store()
        settings = service.current_settings()
        raw_day = payload.get("day")
        day = service.resolve_day(raw_day, store=store) if raw_day not in (None, "") else service.current_game_day(store=store, settings=settings)
        try:
            submissions = store.list_submissions()
            items = store.list_items()
        except StoreError as exc:
            current_app.logger.error("Admin stats failed: %s", exc)
            raise service.GuessRejected(PERSISTENCE_FAILURE) from exc

        leaderboard = build_leaderboard(
            submissions,
            items,
            mode=settings.scoring_mode,
            points_per_correct=settings.points_per_correct,
            points_per_first_find=settings.points_per_first_find,
            merge_first_name=settings.merge_first_name,
        )
        return jsonify(
            {
                "success": True,
                "stats": build_admin_stats(submissions, items, day=day, daily_cap=settings.daily_cap),
                "leaderboard": [entry.to_dict() for entry in leaderboard],
                "submissions": [sub.to_dict() for sub in reversed(submissions)],
            }
        )

    return bp


# --- item actions ------------------------------------------------------------


def _list_items(payload: dict, store, settings) -> dict:
    return _snapshot(store)


def _add_item(payload: dict, store, settings) -> dict:
    if store.count_items() >= settings.max_items:
        raise service.GuessServiceError(f"Maximum {settings.max_items} indices atteint", status_code=400)
    fields, errors = _validate_item_fields(_item_payload(payload), partial=False)
    if errors:
        raise service.GuessServiceError(" ".join(errors), status_code=400)
    item = store.create_item(fields)
    return {"item": item.to_admin_dict(), **_snapshot(store)}


def _update_item(payload: dict, store, settings) -> dict:
    item_id = _item_id(payload)
    fields, errors = _validate_item_fields(_item_payload(payload), partial=True)
    if errors:
        raise service.GuessServiceError(" ".join(errors), status_code=400)
    item = store.update_item(item_id, fields)
    if item is None:
        raise service.GuessRejected(NOT_FOUND)
    return {"item": item.to_admin_dict(), **_snapshot(store)}


def _delete_item(payload: dict, store, settings) -> dict:
    if not store.delete_item(_item_id(payload)):
        raise service.GuessRejected(NOT_FOUND)
    return _snapshot(store)


def _add_hint(payload: dict, store, settings) -> dict:
    text = _required_text(payload, "hintText", "clueText")
    hint = store.add_hint(_item_id(payload), text)
    if hint is None:
        raise service.GuessRejected(NOT_FOUND)
    return {"hint": hint, **_snapshot(store)}


def _update_hint(payload: dict, store, settings) -> dict:
    text = _required_text(payload, "hintText", "clueText")
    hint = store.update_hint(_hint_id(payload), text)
    if hint is None:
        raise service.GuessRejected(NOT_FOUND)
    return {"hint": hint, **_snapshot(store)}


def _delete_hint(payload: dict, store, settings) -> dict:
    if not store.delete_hint(_hint_id(payload)):
        raise service.GuessRejected(NOT_FOUND)
    return _snapshot(store)


def _set_daily_items(payload: dict, store, settings) -> dict:
    day = service.resolve_day(payload.get("day"), store=store)
    raw_ids = payload.get("itemIds", payload.get("secretIds")) or []
    if not isinstance(raw_ids, list):
        raise service.GuessServiceError("itemIds doit être une liste", status_code=400)

    item_ids: List[str] = []
    for value in raw_ids:
        if value in (None, ""):
            continue
        text = str(value).strip()
        if text and text not in item_ids:
            item_ids.append(text)
    if len(item_ids) > MAX_ITEMS_PER_DAY:
        raise service.GuessServiceError(f"Maximum {MAX_ITEMS_PER_DAY} indices par jour", status_code=400)
    for item_id in item_ids:
        if store.get_item(item_id) is None:
            raise service.GuessRejected(NOT_FOUND)

    assignment = store.set_daily_items(day, item_ids)
    return {"assignment": assignment, **_snapshot(store)}


def _get_game_config(payload: dict, store, settings) -> dict:
    return {"config": store.get_game_config()}


def _update_game_config(payload: dict, store, settings) -> dict:
    try:
        start_date = service.parse_date(payload.get("startDate"))
        end_date = service.parse_date(payload.get("endDate"))
    except (TypeError, ValueError):
        raise service.GuessServiceError("Dates invalides", status_code=400)
    if start_date and end_date and end_date < start_date:
        raise service.GuessServiceError("La date de fin précède la date de début", status_code=400)
    store.save_game_config(start_date, end_date)
    return {"config": store.get_game_config()}


ITEM_ACTIONS: Dict[str, Callable[[dict, Any, service.GameSettings], dict]] = {
    "list": _list_items,
    "add": _add_item,
    "update": _update_item,
    "delete": _delete_item,
    "addHint": _add_hint,
    "updateHint": _update_hint,
    "deleteHint": _delete_hint,
    "setDailyItems": _set_daily_items,
    "getGameConfig": _get_game_config,
    "updateGameConfig": _update_game_config,
}


# --- helpers -----------------------------------------------------------------


def _snapshot(store) -> dict:
    """Re-read the collections an admin screen shows after any change."""
    return {
        "items": [item.to_admin_dict() for item in store.list_items()],
        "assignments": store.list_assignments(),
    }


def _validate_item_fields(raw: dict, partial: bool) -> Tuple[Dict[str, Any], List[str]]:
    fields: Dict[str, Any] = {}
    errors: List[str] = []

    prompt = _clean_text(_first_present(raw, "prompt", "text", "title"))
    if prompt:
        fields["prompt"] = prompt
    elif not partial:
        errors.append("Le texte de l'indice est requis.")

    answer = _clean_text(_first_present(raw, "answer", "person_name"), sanitize=False)
    if answer:
        fields["answer"] = answer
    elif not partial:
        errors.append("La réponse est requise.")

    if "day" in raw:
        if raw.get("day") in (None, ""):
            fields["day"] = None
        else:
            try:
                fields["day"] = service.resolve_day(raw.get("day"))
            except service.GuessServiceError:
                errors.append("Le jour doit être un nombre positif ou une date.")

    ordinal_raw = _first_present(raw, "ordinal", "clue_number")
    if ordinal_raw is not None:
        try:
            ordinal = int(ordinal_raw)
        except (TypeError, ValueError):
            ordinal = None
        if ordinal not in VALID_ORDINALS:
            errors.append("La position doit être 1 ou 2.")
        else:
            fields["ordinal"] = ordinal

    if "is_active" in raw:
        fields["is_active"] = _coerce_bool(raw.get("is_active"))

    return fields, errors


def _item_payload(payload: dict) -> dict:
    raw = payload.get("item") or payload.get("clueData") or payload.get("secret") or {}
    if not isinstance(raw, dict):
        raise service.GuessServiceError("Données manquantes", status_code=400)
    return raw


def _item_id(payload: dict) -> str:
    value = _first_present(payload, "itemId", "secretId")
    if value is None:
        raise service.GuessServiceError("Données manquantes", status_code=400)
    return str(value).strip()


def _hint_id(payload: dict) -> int:
    value = _first_present(payload, "hintId", "clueId")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise service.GuessServiceError("Données manquantes", status_code=400)


def _required_text(payload: dict, *keys: str) -> str:
    text = _clean_text(_first_present(payload, *keys))
    if not text:
        raise service.GuessServiceError("Données manquantes", status_code=400)
    return text


def _clean_text(value: Any, sanitize: bool = True) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    if sanitize:
        # Answers skip this: entity escaping would break comparison.
        cleaned = bleach.clean(cleaned, tags=[], attributes={}, strip=True).strip()
    return cleaned[:MAX_TEXT_LENGTH] or None


def _first_present(payload: dict, *keys: str):
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _json_payload() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise service.GuessServiceError("Requête invalide", status_code=400)
    return payload
