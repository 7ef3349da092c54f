"""Storage collaborators for items, submissions, players and day assignments.

Two interchangeable stores: `SqlGuessStore` (Flask-SQLAlchemy, the default)
and `SupabaseGuessStore` (hosted Postgres through supabase-py). Both return
plain records so the validator and scoring code never see ORM rows or API
payloads. The only write that needs compare-and-swap semantics is the
first-finder claim; everything else is a plain read-then-write.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional

from dateutil import parser as date_parser
from flask import current_app, has_app_context
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db
from models import DailyAssignment, GameConfig, Item, ItemHint, Player, Submission

ITEMS_TABLE = "items"
HINTS_TABLE = "item_hints"
SUBMISSIONS_TABLE = "submissions"
PLAYERS_TABLE = "players"
ASSIGNMENTS_TABLE = "daily_assignments"
GAME_CONFIG_TABLE = "game_config"

ITEM_FIELDS = ("prompt", "answer", "day", "ordinal", "is_active")


class StoreError(Exception):
    """Raised when the underlying store fails."""


class DuplicateSubmissionError(StoreError):
    """Raised when (player_key, item_id) already has a submission."""


@dataclass
class ItemRecord:
    id: str
    prompt: str
    answer: str
    day: Optional[int] = None
    ordinal: Optional[int] = None
    is_active: bool = True
    first_finder: Optional[str] = None
    first_finder_name: Optional[str] = None
    hints: List[dict] = field(default_factory=list)
    assigned_days: List[int] = field(default_factory=list)

    @property
    def available_day(self) -> Optional[int]:
        """Earliest day the item may be answered, or None when unrestricted."""
        if self.day is not None:
            return self.day
        return min(self.assigned_days) if self.assigned_days else None

    @classmethod
    def from_model(cls, item: Item, assigned_days: Iterable[int] = ()) -> "ItemRecord":
        return cls(
            id=item.id,
            prompt=item.prompt,
            answer=item.answer,
            day=item.day,
            ordinal=item.ordinal,
            is_active=bool(item.is_active),
            first_finder=item.first_finder,
            first_finder_name=item.first_finder_name,
            hints=[hint.to_dict() for hint in item.hints],
            assigned_days=sorted(assigned_days),
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any], hints: Iterable[dict] = (), assigned_days: Iterable[int] = ()) -> "ItemRecord":
        return cls(
            id=str(row.get("id")),
            prompt=row.get("prompt") or "",
            answer=row.get("answer") or "",
            day=_coerce_int(row.get("day")),
            ordinal=_coerce_int(row.get("ordinal")),
            is_active=row.get("is_active") is not False,
            first_finder=row.get("first_finder"),
            first_finder_name=row.get("first_finder_name"),
            hints=[{"id": h.get("id"), "item_id": h.get("item_id"), "text": h.get("text")} for h in hints],
            assigned_days=sorted(assigned_days),
        )

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "day": self.day,
            "ordinal": self.ordinal,
            "found": self.first_finder is not None,
            "hints": list(self.hints),
        }

    def to_admin_dict(self) -> dict:
        return {
            **self.to_public_dict(),
            "answer": self.answer,
            "is_active": self.is_active,
            "first_finder": self.first_finder,
            "first_finder_name": self.first_finder_name,
            "assigned_days": list(self.assigned_days),
        }


@dataclass
class SubmissionRecord:
    id: Optional[str]
    player_key: str
    player_name: str
    item_id: str
    day: int
    guess_text: str
    is_correct: bool
    is_first_finder: Optional[bool] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, row: Submission) -> "SubmissionRecord":
        return cls(
            id=row.id,
            player_key=row.player_key,
            player_name=row.player_name,
            item_id=row.item_id,
            day=row.day,
            guess_text=row.guess_text,
            is_correct=bool(row.is_correct),
            is_first_finder=row.is_first_finder,
            created_at=row.created_at,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SubmissionRecord":
        return cls(
            id=_coerce_str(row.get("id")),
            player_key=row.get("player_key") or "",
            player_name=row.get("player_name") or "",
            item_id=str(row.get("item_id")),
            day=_coerce_int(row.get("day")) or 0,
            guess_text=row.get("guess_text") or "",
            is_correct=bool(row.get("is_correct")),
            is_first_finder=row.get("is_first_finder"),
            created_at=_parse_datetime(row.get("created_at")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "player_name": self.player_name,
            "item_id": self.item_id,
            "day": self.day,
            "guess_text": self.guess_text,
            "is_correct": self.is_correct,
            "is_first_finder": self.is_first_finder,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def get_store():
    """Pick the Supabase store when enabled, otherwise the local SQL store."""
    client = _get_supabase_client()
    if client:
        return SupabaseGuessStore(client)
    return SqlGuessStore()


class SqlGuessStore:
    """Store backed by the Flask-SQLAlchemy session."""

    # --- reads -------------------------------------------------------------

    def get_item(self, item_id: str) -> Optional[ItemRecord]:
        with _reading(f"fetching item {item_id}"):
            item = db.session.get(Item, item_id)
            if item is None:
                return None
            return ItemRecord.from_model(item, self._assigned_days().get(item.id, []))

    def list_items(self) -> List[ItemRecord]:
        with _reading("listing items"):
            assigned = self._assigned_days()
            rows = Item.query.order_by(Item.day.asc(), Item.ordinal.asc(), Item.created_at.asc()).all()
            return [ItemRecord.from_model(row, assigned.get(row.id, [])) for row in rows]

    def count_items(self) -> int:
        with _reading("counting items"):
            return Item.query.count()

    def list_items_for_day(self, day: int) -> List[ItemRecord]:
        """Items assigned to the day, falling back to items scheduled on it.

        An assignment row with no items means the day was cleared on purpose.
        """
        with _reading(f"listing items for day {day}"):
            assignment = db.session.get(DailyAssignment, day)
            if assignment is not None:
                records = [self.get_item(item_id) for item_id in assignment.item_ids]
                return [record for record in records if record and record.is_active]
            rows = (
                Item.query.filter(Item.day == day, Item.is_active.is_(True))
                .order_by(Item.ordinal.asc(), Item.created_at.asc())
                .all()
            )
            assigned = self._assigned_days()
            return [ItemRecord.from_model(row, assigned.get(row.id, [])) for row in rows]

    def list_submissions(
        self,
        *,
        player_key: Optional[str] = None,
        day: Optional[int] = None,
    ) -> List[SubmissionRecord]:
        query = Submission.query
        if player_key is not None:
            query = query.filter(Submission.player_key == player_key)
        if day is not None:
            query = query.filter(Submission.day == day)
        with _reading("listing submissions"):
            rows = query.order_by(Submission.created_at.asc(), Submission.id.asc()).all()
        return [SubmissionRecord.from_model(row) for row in rows]

    def list_assignments(self) -> List[dict]:
        with _reading("listing day assignments"):
            rows = DailyAssignment.query.order_by(DailyAssignment.day.asc()).all()
        return [row.to_dict() for row in rows]

    def get_game_config(self) -> dict:
        with _reading("fetching game config"):
            config = GameConfig.query.order_by(GameConfig.id.asc()).first()
        return config.to_dict() if config else {"start_date": None, "end_date": None}

    # --- submissions -------------------------------------------------------

    def record_submission(self, submission: SubmissionRecord, *, claim_first_finder: bool = False) -> tuple[SubmissionRecord, bool]:
        """Insert the submission and optionally claim the item's first finder.

        The claim is an `UPDATE ... WHERE first_finder IS NULL` in the same
        transaction as the insert, so either both land or neither does.
        Returns the stored record and whether the claim succeeded.
        """
        self._touch_player(submission.player_key, submission.player_name)
        now = datetime.now(timezone.utc)
        claimed = False
        try:
            if claim_first_finder:
                result = db.session.execute(
                    update(Item)
                    .where(Item.id == submission.item_id, Item.first_finder.is_(None))
                    .values(
                        first_finder=submission.player_key,
                        first_finder_name=submission.player_name,
                        first_found_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                claimed = result.rowcount == 1
            row = Submission(
                player_key=submission.player_key,
                player_name=submission.player_name,
                item_id=submission.item_id,
                day=submission.day,
                guess_text=submission.guess_text,
                is_correct=submission.is_correct,
                is_first_finder=claimed if submission.is_first_finder is not None else None,
                created_at=now,
            )
            db.session.add(row)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise DuplicateSubmissionError(str(exc)) from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(str(exc)) from exc
        return SubmissionRecord.from_model(row), claimed

    def _touch_player(self, player_key: str, display_name: str) -> None:
        with _reading(f"looking up player {player_key}"):
            player = Player.query.filter_by(player_key=player_key).first()
        if player is None:
            player = Player(player_key=player_key, display_name=display_name)
            db.session.add(player)
        player.last_played_at = datetime.now(timezone.utc)
        try:
            db.session.commit()
        except IntegrityError:
            # Another request created the same player first.
            db.session.rollback()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreError(str(exc)) from exc

    # --- admin writes ------------------------------------------------------

    def create_item(self, fields: Dict[str, Any]) -> ItemRecord:
        item = Item(**{key: fields[key] for key in ITEM_FIELDS if key in fields})
        db.session.add(item)
        self._commit("creating item")
        return self.get_item(item.id)

    def update_item(self, item_id: str, fields: Dict[str, Any]) -> Optional[ItemRecord]:
        item = db.session.get(Item, item_id)
        if item is None:
            return None
        for key in ITEM_FIELDS:
            if key in fields:
                setattr(item, key, fields[key])
        self._commit(f"updating item {item_id}")
        return self.get_item(item_id)

    def delete_item(self, item_id: str) -> bool:
        item = db.session.get(Item, item_id)
        if item is None:
            return False
        db.session.delete(item)
        for assignment in DailyAssignment.query.all():
            if assignment.item1_id == item_id:
                assignment.item1_id = None
            if assignment.item2_id == item_id:
                assignment.item2_id = None
        self._commit(f"deleting item {item_id}")
        return True

    def add_hint(self, item_id: str, text: str) -> Optional[dict]:
        if db.session.get(Item, item_id) is None:
            return None
        hint = ItemHint(item_id=item_id, text=text)
        db.session.add(hint)
        self._commit(f"adding hint to item {item_id}")
        return hint.to_dict()

    def update_hint(self, hint_id: int, text: str) -> Optional[dict]:
        hint = db.session.get(ItemHint, hint_id)
        if hint is None:
            return None
        hint.text = text
        self._commit(f"updating hint {hint_id}")
        return hint.to_dict()

    def delete_hint(self, hint_id: int) -> bool:
        hint = db.session.get(ItemHint, hint_id)
        if hint is None:
            return False
        db.session.delete(hint)
        self._commit(f"deleting hint {hint_id}")
        return True

    def set_daily_items(self, day: int, item_ids: List[str]) -> dict:
        assignment = db.session.get(DailyAssignment, day) or DailyAssignment(day=day)
        padded = list(item_ids) + [None, None]
        assignment.item1_id, assignment.item2_id = padded[0], padded[1]
        db.session.add(assignment)
        self._commit(f"assigning items to day {day}")
        return assignment.to_dict()

    def save_game_config(self, start_date: Optional[date], end_date: Optional[date]) -> dict:
        config = GameConfig.query.order_by(GameConfig.id.asc()).first() or GameConfig()
        config.start_date = start_date
        config.end_date = end_date
        db.session.add(config)
        self._commit("saving game config")
        return config.to_dict()

    def _assigned_days(self) -> Dict[str, List[int]]:
        days: Dict[str, List[int]] = {}
        for assignment in DailyAssignment.query.all():
            for item_id in assignment.item_ids:
                days.setdefault(item_id, []).append(assignment.day)
        return days

    def _commit(self, action: str) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            _log_store_error(action, exc)
            raise StoreError(str(exc)) from exc


class SupabaseGuessStore:
    """Store backed by Supabase tables mirroring the SQL models."""

    def __init__(self, client) -> None:
        self.client = client

    # --- reads -------------------------------------------------------------

    def get_item(self, item_id: str) -> Optional[ItemRecord]:
        rows = self._execute(
            "fetching item",
            self.client.table(ITEMS_TABLE).select("*").eq("id", item_id).limit(1),
        )
        if not rows:
            return None
        hints = self._execute(
            "fetching item hints",
            self.client.table(HINTS_TABLE).select("*").eq("item_id", item_id).order("id"),
        )
        return ItemRecord.from_row(rows[0], hints, self._assigned_days().get(str(item_id), []))

    def list_items(self) -> List[ItemRecord]:
        rows = self._execute(
            "listing items",
            self.client.table(ITEMS_TABLE).select("*").order("day").order("ordinal").order("created_at"),
        )
        hints = self._execute("listing hints", self.client.table(HINTS_TABLE).select("*").order("id"))
        assigned = self._assigned_days()
        hints_by_item: Dict[str, List[dict]] = {}
        for hint in hints:
            hints_by_item.setdefault(str(hint.get("item_id")), []).append(hint)
        return [
            ItemRecord.from_row(row, hints_by_item.get(str(row.get("id")), []), assigned.get(str(row.get("id")), []))
            for row in rows
        ]

    def count_items(self) -> int:
        try:
            resp = self.client.table(ITEMS_TABLE).select("id", count="exact").execute()
        except Exception as exc:
            _log_store_error("counting items", exc)
            raise StoreError(str(exc)) from exc
        if getattr(resp, "count", None) is not None:
            return int(resp.count)
        return len(resp.data or [])

    def list_items_for_day(self, day: int) -> List[ItemRecord]:
        assignment = self._get_assignment(day)
        if assignment is not None:
            records = [self.get_item(item_id) for item_id in assignment["item_ids"]]
            return [record for record in records if record and record.is_active]
        return [
            record
            for record in self.list_items()
            if record.day == day and record.is_active
        ]

    def list_submissions(
        self,
        *,
        player_key: Optional[str] = None,
        day: Optional[int] = None,
    ) -> List[SubmissionRecord]:
        query = self.client.table(SUBMISSIONS_TABLE).select("*")
        if player_key is not None:
            query = query.eq("player_key", player_key)
        if day is not None:
            query = query.eq("day", day)
        rows = self._execute("listing submissions", query.order("created_at", desc=False))
        return [SubmissionRecord.from_row(row) for row in rows]

    def list_assignments(self) -> List[dict]:
        rows = self._execute(
            "listing day assignments",
            self.client.table(ASSIGNMENTS_TABLE).select("*").order("day", desc=False),
        )
        return [_assignment_from_row(row) for row in rows]

    def get_game_config(self) -> dict:
        rows = self._execute(
            "fetching game config",
            self.client.table(GAME_CONFIG_TABLE).select("*").limit(1),
        )
        if not rows:
            return {"start_date": None, "end_date": None}
        return {"start_date": rows[0].get("start_date"), "end_date": rows[0].get("end_date")}

    # --- submissions -------------------------------------------------------

    def record_submission(self, submission: SubmissionRecord, *, claim_first_finder: bool = False) -> tuple[SubmissionRecord, bool]:
        """Claim first, insert second; release the claim if the insert fails."""
        now = datetime.now(timezone.utc).isoformat()
        claimed = False
        if claim_first_finder:
            rows = self._execute(
                "claiming first finder",
                self.client.table(ITEMS_TABLE)
                .update({
                    "first_finder": submission.player_key,
                    "first_finder_name": submission.player_name,
                    "first_found_at": now,
                })
                .eq("id", submission.item_id)
                .is_("first_finder", "null"),
            )
            claimed = bool(rows)

        payload = {
            "player_key": submission.player_key,
            "player_name": submission.player_name,
            "item_id": submission.item_id,
            "day": submission.day,
            "guess_text": submission.guess_text,
            "is_correct": submission.is_correct,
            "is_first_finder": claimed if submission.is_first_finder is not None else None,
            "created_at": now,
        }
        try:
            resp = self.client.table(SUBMISSIONS_TABLE).insert(payload).execute()
        except Exception as exc:
            if claimed:
                self._release_claim(submission)
            if _is_supabase_conflict(exc):
                raise DuplicateSubmissionError(str(exc)) from exc
            _log_store_error("inserting submission", exc)
            raise StoreError(str(exc)) from exc

        self._touch_player(submission.player_key, submission.player_name, now)
        rows = resp.data or [payload]
        return SubmissionRecord.from_row(rows[0]), claimed

    def _release_claim(self, submission: SubmissionRecord) -> None:
        try:
            (
                self.client.table(ITEMS_TABLE)
                .update({"first_finder": None, "first_finder_name": None, "first_found_at": None})
                .eq("id", submission.item_id)
                .eq("first_finder", submission.player_key)
                .execute()
            )
        except Exception as exc:  # pragma: no cover - external service dependency
            _log_store_error("releasing first finder claim", exc)

    def _touch_player(self, player_key: str, display_name: str, now: str) -> None:
        try:
            (
                self.client.table(PLAYERS_TABLE)
                .upsert(
                    {"player_key": player_key, "display_name": display_name, "last_played_at": now},
                    on_conflict="player_key",
                )
                .execute()
            )
        except Exception as exc:  # pragma: no cover - external service dependency
            _log_store_warning("upserting player", exc)

    # --- admin writes ------------------------------------------------------

    def create_item(self, fields: Dict[str, Any]) -> ItemRecord:
        payload = {key: fields[key] for key in ITEM_FIELDS if key in fields}
        rows = self._execute("creating item", self.client.table(ITEMS_TABLE).insert(payload))
        return ItemRecord.from_row(rows[0]) if rows else ItemRecord.from_row(payload)

    def update_item(self, item_id: str, fields: Dict[str, Any]) -> Optional[ItemRecord]:
        payload = {key: fields[key] for key in ITEM_FIELDS if key in fields}
        rows = self._execute(
            f"updating item {item_id}",
            self.client.table(ITEMS_TABLE).update(payload).eq("id", item_id),
        )
        return self.get_item(item_id) if rows else None

    def delete_item(self, item_id: str) -> bool:
        self._execute(f"deleting hints of item {item_id}", self.client.table(HINTS_TABLE).delete().eq("item_id", item_id))
        rows = self._execute(f"deleting item {item_id}", self.client.table(ITEMS_TABLE).delete().eq("id", item_id))
        for column in ("item1_id", "item2_id"):
            self._execute(
                f"unassigning item {item_id}",
                self.client.table(ASSIGNMENTS_TABLE).update({column: None}).eq(column, item_id),
            )
        return bool(rows)

    def add_hint(self, item_id: str, text: str) -> Optional[dict]:
        if self.get_item(item_id) is None:
            return None
        rows = self._execute(
            f"adding hint to item {item_id}",
            self.client.table(HINTS_TABLE).insert({"item_id": item_id, "text": text}),
        )
        return rows[0] if rows else None

    def update_hint(self, hint_id: int, text: str) -> Optional[dict]:
        rows = self._execute(
            f"updating hint {hint_id}",
            self.client.table(HINTS_TABLE).update({"text": text}).eq("id", hint_id),
        )
        return rows[0] if rows else None

    def delete_hint(self, hint_id: int) -> bool:
        rows = self._execute(f"deleting hint {hint_id}", self.client.table(HINTS_TABLE).delete().eq("id", hint_id))
        return bool(rows)

    def set_daily_items(self, day: int, item_ids: List[str]) -> dict:
        padded = list(item_ids) + [None, None]
        rows = self._execute(
            f"assigning items to day {day}",
            self.client.table(ASSIGNMENTS_TABLE).upsert(
                {"day": day, "item1_id": padded[0], "item2_id": padded[1]},
                on_conflict="day",
            ),
        )
        return _assignment_from_row(rows[0]) if rows else {"day": day, "item_ids": list(item_ids)}

    def save_game_config(self, start_date: Optional[date], end_date: Optional[date]) -> dict:
        payload = {
            "start_date": start_date.isoformat() if start_date else None,
            "end_date": end_date.isoformat() if end_date else None,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        existing = self._execute(
            "fetching game config",
            self.client.table(GAME_CONFIG_TABLE).select("id").limit(1),
        )
        if existing:
            query = self.client.table(GAME_CONFIG_TABLE).update(payload).eq("id", existing[0]["id"])
        else:
            query = self.client.table(GAME_CONFIG_TABLE).insert(payload)
        self._execute("saving game config", query)
        return {"start_date": payload["start_date"], "end_date": payload["end_date"]}

    def _get_assignment(self, day: int) -> Optional[dict]:
        rows = self._execute(
            f"fetching day {day} assignment",
            self.client.table(ASSIGNMENTS_TABLE).select("*").eq("day", day).limit(1),
        )
        return _assignment_from_row(rows[0]) if rows else None

    def _assigned_days(self) -> Dict[str, List[int]]:
        days: Dict[str, List[int]] = {}
        for assignment in self.list_assignments():
            for item_id in assignment["item_ids"]:
                days.setdefault(str(item_id), []).append(assignment["day"])
        return days

    def _execute(self, action: str, query) -> List[dict]:
        try:
            resp = query.execute()
        except Exception as exc:
            _log_store_error(action, exc)
            raise StoreError(str(exc)) from exc
        return getattr(resp, "data", None) or []


def _assignment_from_row(row: Dict[str, Any]) -> dict:
    item_ids = [str(value) for value in (row.get("item1_id"), row.get("item2_id")) if value]
    return {"day": _coerce_int(row.get("day")), "item_ids": item_ids}


def _get_supabase_client():
    if not has_app_context():
        return None
    if not current_app.config.get("USE_SUPABASE"):
        return None
    client = current_app.config.get("SUPABASE_CLIENT")
    return client if client else None


def _is_supabase_conflict(exc: Exception) -> bool:
    if getattr(exc, "code", None) == "23505":
        return True
    message = str(exc).lower()
    return "duplicate key value" in message or "unique constraint" in message


@contextmanager
def _reading(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        db.session.rollback()
        _log_store_error(action, exc)
        raise StoreError(str(exc)) from exc


def _log_store_error(action: str, exc: Exception) -> None:
    if not has_app_context():
        return
    current_app.logger.error("Guess store error while %s: %s", action, exc)


def _log_store_warning(action: str, exc: Exception) -> None:
    if not has_app_context():
        return
    current_app.logger.warning("Guess store warning while %s: %s", action, exc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = date_parser.isoparse(str(value))
        except (TypeError, ValueError):
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _coerce_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _coerce_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)
