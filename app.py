import hashlib
import hmac
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from flask import Flask, current_app, jsonify, request
from supabase import Client, create_client
from werkzeug.exceptions import HTTPException

from extensions import db
from devinettes import create_admin_blueprint, game_api_blueprint


# ====== Feature toggle ======
def _env_flag(name: str, default: bool) -> bool:
    """Parse truthy feature-toggle values from the environment."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        print(f"⚠️ Invalid {name} value: {raw!r}. Using default {default}.")
        return default


def _env_str(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None:
        return None
    return value.strip() or None


USE_SUPABASE = _env_flag("USE_SUPABASE", False)  # ✅ Supabase tables instead of the local SQLite store
LEADERBOARD_MERGE_FIRST_NAME = _env_flag("LEADERBOARD_MERGE_FIRST_NAME", False)  # ⚠️ merges every "Alex" into one row

# ====== Game rules ======
SCORING_MODE = (os.environ.get("SCORING_MODE") or "fixed_points").strip().lower()
POINTS_PER_CORRECT = _env_int("POINTS_PER_CORRECT", 10)
POINTS_PER_FIRST_FIND = _env_int("POINTS_PER_FIRST_FIND", 1)
DAILY_SUBMISSION_CAP = _env_int("DAILY_SUBMISSION_CAP", 2, minimum=1)
MAX_ITEMS = _env_int("MAX_ITEMS", 20, minimum=1)
GAME_TIMEZONE = os.environ.get("GAME_TIMEZONE", "Europe/Paris")

# ====== Admin code ======
ADMIN_CODE = _env_str("ADMIN_CODE")
ADMIN_CODE_HASH = _env_str("ADMIN_CODE_HASH")

# ====== Supabase setup ======
SUPABASE_URL = os.environ.get("SUPABASE_URL")
SUPABASE_KEY = os.environ.get("SUPABASE_KEY")


def hash_value(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


def admin_code_configured() -> bool:
    return bool(current_app.config.get("ADMIN_CODE_HASH") or current_app.config.get("ADMIN_CODE"))


def admin_code_matches(code: Any) -> bool:
    """Compare a submitted admin code against the configured secret."""
    if not code or not isinstance(code, str):
        return False
    expected_hash = current_app.config.get("ADMIN_CODE_HASH")
    if expected_hash:
        return hmac.compare_digest(hash_value(code), expected_hash.lower())
    expected = current_app.config.get("ADMIN_CODE")
    if expected:
        return hmac.compare_digest(code.encode(), expected.encode())
    return False


def _init_supabase(app: Flask) -> Optional[Client]:
    if not app.config.get("USE_SUPABASE"):
        return None
    if app.config.get("SUPABASE_CLIENT"):
        return app.config["SUPABASE_CLIENT"]
    url, key = app.config.get("SUPABASE_URL"), app.config.get("SUPABASE_KEY")
    if not (url and key):
        app.logger.warning("USE_SUPABASE is on but SUPABASE_URL/SUPABASE_KEY are missing; using SQLite.")
        return None
    try:
        return create_client(url, key)
    except Exception as exc:
        app.logger.warning("Could not init Supabase client: %s", exc)
        return None


def create_app(overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Build the Flask app; `overrides` wins over environment-derived config."""
    app = Flask(__name__)
    app.config.setdefault("USE_SUPABASE", USE_SUPABASE)
    app.config.setdefault("SUPABASE_URL", SUPABASE_URL)
    app.config.setdefault("SUPABASE_KEY", SUPABASE_KEY)
    app.config.setdefault("SCORING_MODE", SCORING_MODE)
    app.config.setdefault("POINTS_PER_CORRECT", POINTS_PER_CORRECT)
    app.config.setdefault("POINTS_PER_FIRST_FIND", POINTS_PER_FIRST_FIND)
    app.config.setdefault("DAILY_SUBMISSION_CAP", DAILY_SUBMISSION_CAP)
    app.config.setdefault("MAX_ITEMS", MAX_ITEMS)
    app.config.setdefault("GAME_TIMEZONE", GAME_TIMEZONE)
    app.config.setdefault("LEADERBOARD_MERGE_FIRST_NAME", LEADERBOARD_MERGE_FIRST_NAME)
    app.config.setdefault("ADMIN_CODE", ADMIN_CODE)
    app.config.setdefault("ADMIN_CODE_HASH", ADMIN_CODE_HASH)
    app.config.setdefault("LOG_LEVEL", os.environ.get("LOG_LEVEL", "INFO"))
    if overrides:
        app.config.update(overrides)

    if "SQLALCHEMY_DATABASE_URI" not in app.config:
        data_dir = Path(app.root_path) / "data"
        data_dir.mkdir(parents=True, exist_ok=True)
        app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get(
            "DATABASE_URL", f"sqlite:///{data_dir / 'devinettes.db'}"
        )
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)
    app.logger.setLevel(app.config["LOG_LEVEL"])

    app.config["SUPABASE_CLIENT"] = _init_supabase(app)
    if not (app.config.get("ADMIN_CODE") or app.config.get("ADMIN_CODE_HASH")):
        app.logger.warning("ADMIN_CODE is not set; admin endpoints will reject every request.")

    db.init_app(app)
    app.register_blueprint(game_api_blueprint)
    app.register_blueprint(create_admin_blueprint(admin_code_matches, admin_code_configured))

    @app.errorhandler(HTTPException)
    def show_json_error(err: HTTPException):
        return jsonify({"success": False, "error": err.description}), err.code or 500

    @app.errorhandler(Exception)
    def show_unexpected_error(err: Exception):
        app.logger.exception("Unhandled error on %s: %s", request.path, err)
        return jsonify({"success": False, "error": "Une erreur est survenue"}), 500

    @app.get("/healthz")
    def healthz():
        return jsonify({"status": "ok", "supabase": bool(app.config.get("SUPABASE_CLIENT"))})

    with app.app_context():
        db.create_all()

    return app


if __name__ == "__main__":
    create_app().run(debug=_env_flag("FLASK_DEBUG", False))
