"""Database models for the Devinettes Flask app."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import func

from extensions import db


def _new_id() -> str:
    return str(uuid.uuid4())


class Item(db.Model):
    """A clue or secret shown to players on a given game day."""

    __tablename__ = "items"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    prompt = db.Column(db.Text, nullable=False)
    answer = db.Column(db.String(200), nullable=False)
    day = db.Column(db.Integer, index=True, nullable=True)
    ordinal = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    # Identity key of the first correct guesser; only ever written through a
    # conditional update (see devinettes.store).
    first_finder = db.Column(db.String(120), nullable=True)
    first_finder_name = db.Column(db.String(120), nullable=True)
    first_found_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    hints = db.relationship(
        "ItemHint",
        backref="item",
        cascade="all, delete-orphan",
        order_by="ItemHint.id",
        lazy="selectin",
    )

    def __repr__(self) -> str:  # pragma: no cover - helper for shell debugging
        return f"<Item id={self.id!r} day={self.day} ordinal={self.ordinal}>"


class ItemHint(db.Model):
    """Extra clue text attached to an item and revealed alongside it."""

    __tablename__ = "item_hints"

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(
        db.String(64),
        db.ForeignKey("items.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )
    text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "item_id": self.item_id, "text": self.text}


class Player(db.Model):
    """Display-name identity; one row per normalized name."""

    __tablename__ = "players"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    player_key = db.Column(db.String(120), unique=True, nullable=False)
    display_name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_played_at = db.Column(db.DateTime(timezone=True), nullable=True)


class Submission(db.Model):
    """One guess by one player against one item (unique per player/item)."""

    __tablename__ = "submissions"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    player_key = db.Column(db.String(120), index=True, nullable=False)
    player_name = db.Column(db.String(120), nullable=False)
    # No foreign key: submissions outlive an item deleted by an admin.
    item_id = db.Column(db.String(64), index=True, nullable=False)
    day = db.Column(db.Integer, index=True, nullable=False)
    guess_text = db.Column(db.Text, nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False)
    is_first_finder = db.Column(db.Boolean, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        db.UniqueConstraint("player_key", "item_id", name="uq_submission_player_item"),
    )


class DailyAssignment(db.Model):
    """Which 0-2 items are live on a given game day."""

    __tablename__ = "daily_assignments"

    day = db.Column(db.Integer, primary_key=True, autoincrement=False)
    item1_id = db.Column(db.String(64), nullable=True)
    item2_id = db.Column(db.String(64), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    @property
    def item_ids(self) -> list[str]:
        return [value for value in (self.item1_id, self.item2_id) if value]

    def to_dict(self) -> dict:
        return {"day": self.day, "item_ids": self.item_ids}


class GameConfig(db.Model):
    """Season bounds; day 1 is `start_date`."""

    __tablename__ = "game_config"

    id = db.Column(db.Integer, primary_key=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def to_dict(self) -> dict:
        return {
            "start_date": _date_or_none(self.start_date),
            "end_date": _date_or_none(self.end_date),
        }


def _date_or_none(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None

