"""Guessing game package (player API, admin API, scoring)."""

from .admin import create_admin_blueprint
from .routes import game_api_blueprint

__all__ = ["create_admin_blueprint", "game_api_blueprint"]
