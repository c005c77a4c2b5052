# dailydues/leaderboard.py
"""
Ordering and classification of leaderboard entries.

Entries are plain dicts built by services.leaderboard; only the keys used
here are required: current_streak, total_completed, completed_at.
"""
from datetime import date, datetime
from typing import Iterable, List

from .carry_over import is_work_day

SORT_STREAK = "streak"
SORT_REPS = "reps"
SORT_MODES = (SORT_STREAK, SORT_REPS)

STATUS_NOT_DUE = "not_due"
STATUS_NOT_LOGGED = "not_logged"
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"

STREAK_TITLES = [
    (100, "Legend"),
    (50, "Master"),
    (30, "Veteran"),
    (14, "Committed"),
    (7, "Rising"),
    (3, "Beginner"),
]
REPS_TITLES = [
    (10000, "Legend"),
    (5000, "Elite"),
    (1000, "Pro"),
    (500, "Dedicated"),
    (100, "Active"),
    (50, "Rising"),
]


def today_status(active_days: Iterable[int], today: date, statuses: Iterable[str]) -> str:
    """
    Where a user stands today for one commitment. `statuses` are the states
    of every log found for the (user, commitment, today) key; approved wins
    over pending, and a rejected log alone means nothing is submitted.
    """
    if not is_work_day(today, active_days):
        return STATUS_NOT_DUE
    statuses = set(statuses)
    if STATUS_APPROVED in statuses:
        return STATUS_APPROVED
    if STATUS_PENDING in statuses:
        return STATUS_PENDING
    return STATUS_NOT_LOGGED


def _streak_key(entry):
    completed_at = entry.get("completed_at")
    # earliest approval today wins a tie; no approval sorts last
    return (
        -int(entry["current_streak"]),
        completed_at is None,
        completed_at or datetime.min,
    )


def sort_entries(entries: List[dict], sort_by: str = SORT_STREAK) -> List[dict]:
    if sort_by == SORT_REPS:
        return sorted(entries, key=lambda e: int(e["total_completed"]), reverse=True)
    return sorted(entries, key=_streak_key)


def with_ranks(entries: List[dict]) -> List[dict]:
    for rank, entry in enumerate(entries, start=1):
        entry["rank"] = rank
    return entries


def _title(value: int, table, fallback: str) -> str:
    for threshold, title in table:
        if value >= threshold:
            return title
    return fallback


def rank_title(streak: int) -> str:
    return _title(streak, STREAK_TITLES, "Novice")


def reps_title(total: int) -> str:
    return _title(total, REPS_TITLES, "Starter")


def rank_emoji(rank: int) -> str:
    return {
        1: ":first_place_medal:",
        2: ":second_place_medal:",
        3: ":third_place_medal:",
    }.get(rank, f"{rank}.")


def completion_percentage(completed: int, total: int) -> int:
    """Whole-number share of `total`, rounded half up; 0 for an empty realm."""
    if total <= 0:
        return 0
    return (200 * completed + total) // (2 * total)
