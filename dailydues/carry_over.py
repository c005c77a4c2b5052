# dailydues/carry_over.py
"""
Workday calendar and carry-over (punishment debt) rules.

Missing part of a day's total leaves debt for the next due day:

    carry_over = round_half_up(missed * multiplier)
    next total due = daily_target + carry_over

e.g. missing 10 push-ups with a 2x multiplier carries 20 over, so the next
due day asks for 20 + 10 = 30.
"""
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

from .services.errors import ValidationError

DAY_NAMES = [
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
]
VALID_DAYS = frozenset(range(7))

# Sunday-Thursday working week
DEFAULT_WORK_DAYS = [0, 1, 2, 3, 4]

DATE_KEY_FORMAT = "%Y-%m-%d"

Number = Union[int, float, Decimal]


# -----------------------------
# Calendar
# -----------------------------
def weekday_index(day: date) -> int:
    """0 = Sunday .. 6 = Saturday (Python's weekday() starts on Monday)."""
    return (day.weekday() + 1) % 7


def is_work_day(day: date, active_days: Iterable[int]) -> bool:
    return weekday_index(day) in set(active_days)


def previous_work_day(day: date, active_days: Iterable[int]) -> Optional[date]:
    active = set(active_days)
    check = day - timedelta(days=1)
    for _ in range(7):
        if weekday_index(check) in active:
            return check
        check -= timedelta(days=1)
    return None


def format_date_key(day: date) -> str:
    if isinstance(day, datetime):
        day = day.date()
    return day.strftime(DATE_KEY_FORMAT)


def parse_date_key(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value) != 10:
        raise ValidationError("Invalid date format, expected YYYY-MM-DD")
    try:
        return datetime.strptime(value, DATE_KEY_FORMAT).date()
    except ValueError:
        raise ValidationError("Invalid date format, expected YYYY-MM-DD")


def validate_active_days(active_days) -> list:
    if not active_days:
        raise ValidationError("At least one active day is required")
    invalid = [
        d for d in active_days
        if isinstance(d, bool) or not isinstance(d, int) or d not in VALID_DAYS
    ]
    if invalid:
        raise ValidationError(
            f"Invalid day numbers: {', '.join(str(d) for d in invalid)}"
        )
    return sorted(set(active_days))


# -----------------------------
# Carry-over
# -----------------------------
def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps 1.1 as 1.1 instead of its binary expansion
    return Decimal(str(value))


def calculate_carry_over(missed: Number, multiplier: Number) -> int:
    """Debt for the next due day; halves round up (7 * 1.5 -> 11)."""
    if missed <= 0:
        return 0
    product = _to_decimal(missed) * _to_decimal(multiplier)
    return int(product.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def total_due(target_amount: int, carry_over: int) -> int:
    return target_amount + carry_over


def missed_amount(target_amount: int, carry_over: int, completed: int) -> int:
    return max(0, total_due(target_amount, carry_over) - completed)


@dataclass(frozen=True)
class StreakState:
    total_completed: int = 0
    current_streak: int = 0
    best_streak: int = 0
    pending_carry_over: int = 0

    @classmethod
    def from_row(cls, row) -> "StreakState":
        return cls(
            total_completed=int(row.total_completed or 0),
            current_streak=int(row.current_streak or 0),
            best_streak=int(row.best_streak or 0),
            pending_carry_over=int(row.pending_carry_over or 0),
        )

    def apply_to(self, row) -> None:
        row.total_completed = self.total_completed
        row.current_streak = self.current_streak
        row.best_streak = self.best_streak
        row.pending_carry_over = self.pending_carry_over


def apply_approval(
    state: StreakState,
    target_amount: int,
    carry_over: int,
    completed: int,
    multiplier: Number,
) -> StreakState:
    """
    Next aggregate state once a log is approved.

    Full completion (carried debt included) extends the streak and clears
    the debt; anything less breaks the streak and replaces the debt with
    the punishment for what was missed.
    """
    due = total_due(target_amount, carry_over)
    if completed >= due:
        streak = state.current_streak + 1
        return StreakState(
            total_completed=state.total_completed + completed,
            current_streak=streak,
            best_streak=max(state.best_streak, streak),
            pending_carry_over=0,
        )

    missed = missed_amount(target_amount, carry_over, completed)
    return StreakState(
        total_completed=state.total_completed + completed,
        current_streak=0,
        best_streak=state.best_streak,
        pending_carry_over=calculate_carry_over(missed, multiplier),
    )
