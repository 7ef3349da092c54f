"""Shared fixtures: apps on in-memory SQLite in both scoring modes."""

from __future__ import annotations

from typing import Any, Dict

import pytest

from app import create_app
from extensions import db
from helpers import ADMIN_CODE

BASE_CONFIG: Dict[str, Any] = {
    "TESTING": True,
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "USE_SUPABASE": False,
    "SUPABASE_CLIENT": None,
    "ADMIN_CODE": ADMIN_CODE,
    "ADMIN_CODE_HASH": None,
    "SCORING_MODE": "fixed_points",
    "POINTS_PER_CORRECT": 10,
    "POINTS_PER_FIRST_FIND": 1,
    "DAILY_SUBMISSION_CAP": 2,
    "MAX_ITEMS": 20,
    "LEADERBOARD_MERGE_FIRST_NAME": False,
}


@pytest.fixture
def app_factory():
    created = []

    def _make(**overrides):
        app = create_app({**BASE_CONFIG, **overrides})
        created.append(app)
        return app

    yield _make

    for app in created:
        with app.app_context():
            db.session.remove()
            db.drop_all()


@pytest.fixture
def app(app_factory):
    return app_factory()


@pytest.fixture
def first_finder_app(app_factory):
    return app_factory(SCORING_MODE="first_finder")


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def first_finder_client(first_finder_app):
    return first_finder_app.test_client()


