"""Seeding and request helpers shared by the API tests."""

from __future__ import annotations

from extensions import db
from models import DailyAssignment, GameConfig, Item

ADMIN_CODE = "sapin-2025"


def seed_item(app, item_id: str, answer: str, day: int = 1, **extra) -> str:
    with app.app_context():
        item = Item(id=item_id, prompt=extra.pop("prompt", f"Indice {item_id}"), answer=answer, day=day, **extra)
        db.session.add(item)
        db.session.commit()
    return item_id


def seed_assignment(app, day: int, *item_ids: str) -> None:
    padded = list(item_ids) + [None, None]
    with app.app_context():
        db.session.add(DailyAssignment(day=day, item1_id=padded[0], item2_id=padded[1]))
        db.session.commit()


def seed_game_config(app, start_date, end_date=None) -> None:
    with app.app_context():
        db.session.add(GameConfig(start_date=start_date, end_date=end_date))
        db.session.commit()


def submit(client, player: str, item_id: str, guess: str, day=1):
    return client.post(
        "/api/submissions",
        json={"playerName": player, "itemId": item_id, "guessText": guess, "day": day},
    )
