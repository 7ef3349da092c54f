"""Leaderboard and admin statistics built from stored submissions and items."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional

from .normalize import normalize, normalize_to_first_token
from .validator import DEFAULT_DAILY_CAP, SCORING_FIRST_FINDER

DEFAULT_POINTS_PER_CORRECT = 10
DEFAULT_POINTS_PER_FIRST_FIND = 1


@dataclass
class LeaderboardEntry:
    key: str
    name: str
    score: int = 0
    correct_answers: int = 0
    submissions: int = 0
    first_finds: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def identity_key(name: Optional[str], merge_first_name: bool = False) -> str:
    """Key used to group a player's rows; full name unless merging is opted in."""
    if merge_first_name:
        return normalize_to_first_token(name)
    return normalize(name)


def build_leaderboard(
    submissions: Iterable,
    items: Iterable = (),
    *,
    mode: str,
    points_per_correct: int = DEFAULT_POINTS_PER_CORRECT,
    points_per_first_find: int = DEFAULT_POINTS_PER_FIRST_FIND,
    merge_first_name: bool = False,
) -> List[LeaderboardEntry]:
    """Fold submissions (and item finders in first-finder mode) into ranked entries.

    Players appear in order of their first submission; the final sort is
    stable so equal scores keep that order.
    """
    entries: Dict[str, LeaderboardEntry] = {}

    def entry_for(raw_key: str, display_name: str) -> LeaderboardEntry:
        key = identity_key(raw_key, merge_first_name)
        entry = entries.get(key)
        if entry is None:
            entry = entries[key] = LeaderboardEntry(key=key, name=display_name or raw_key)
        return entry

    for sub in submissions:
        entry = entry_for(sub.player_key or sub.player_name, sub.player_name)
        entry.submissions += 1
        if sub.is_correct:
            entry.correct_answers += 1

    if mode == SCORING_FIRST_FINDER:
        for item in items:
            if not item.first_finder:
                continue
            entry = entry_for(item.first_finder, item.first_finder_name or item.first_finder)
            entry.first_finds += 1
        for entry in entries.values():
            entry.score = entry.first_finds * points_per_first_find
    else:
        for entry in entries.values():
            entry.score = entry.correct_answers * points_per_correct

    return sorted(entries.values(), key=lambda entry: -entry.score)


def build_admin_stats(
    submissions: Iterable,
    items: Iterable,
    *,
    day: Optional[int] = None,
    daily_cap: int = DEFAULT_DAILY_CAP,
) -> dict:
    """Totals for the admin dashboard, plus per-day completion when `day` is given."""
    subs = list(submissions)
    item_list = list(items)

    players: List[str] = []
    for sub in subs:
        if sub.player_key not in players:
            players.append(sub.player_key)

    stats = {
        "total_players": len(players),
        "total_submissions": len(subs),
        "correct_submissions": sum(1 for sub in subs if sub.is_correct),
        "items_found": sum(1 for item in item_list if item.first_finder),
        "total_items": len(item_list),
    }
    if day is None:
        return stats

    per_player: Dict[str, int] = {}
    names: Dict[str, str] = {}
    for sub in subs:
        if sub.day != day:
            continue
        per_player[sub.player_key] = per_player.get(sub.player_key, 0) + 1
        names.setdefault(sub.player_key, sub.player_name)

    stats["day"] = day
    stats["completed_players"] = [names[key] for key, count in per_player.items() if count >= daily_cap]
    stats["partial_players"] = [names[key] for key, count in per_player.items() if count < daily_cap]
    stats["total_submissions_today"] = sum(per_player.values())
    return stats
