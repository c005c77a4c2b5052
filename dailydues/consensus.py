# dailydues/consensus.py
"""
Peer-voting rules for challenges.

Members credit each other with reps; a member's agreed score is the
lowest vote once at least two people have voted, so a single generous
voter cannot inflate anyone's result.
"""
from typing import List, Mapping, Optional

from .services.errors import StateConflict, ValidationError

MIN_VOTES = 2
MIN_PARTICIPANTS = 2


def agreed_score(votes: Mapping[int, int]) -> Optional[int]:
    values = list(votes.values())
    if len(values) < MIN_VOTES:
        return None
    return min(values)


def check_vote(voter_id, target_id, reps, max_units: int, previous: Optional[int]) -> None:
    """Raise if a vote may not be stored; `previous` is the voter's current entry."""
    if voter_id == target_id:
        raise StateConflict("You cannot vote for yourself")
    if isinstance(reps, bool) or not isinstance(reps, int):
        raise ValidationError("reps must be an integer")
    if reps < 0:
        raise ValidationError("Reps cannot be negative")
    if reps > max_units:
        raise ValidationError(f"Reps cannot exceed max units ({max_units})")
    if previous is not None and reps < previous:
        raise StateConflict(f"Votes can only increase. Current vote: {previous}")


def entry_score(entry: Mapping, archived: bool) -> Optional[int]:
    return entry["final_reps"] if archived else entry["agreed_reps"]


def sort_challenge_entries(entries: List[dict], archived: bool) -> List[dict]:
    """Highest score first, members without enough votes last; stable."""
    scored = [e for e in entries if entry_score(e, archived) is not None]
    unscored = [e for e in entries if entry_score(e, archived) is None]
    scored.sort(key=lambda e: entry_score(e, archived), reverse=True)
    return scored + unscored


def is_valid_result(entries: List[Mapping]) -> bool:
    voted = [e for e in entries if e["vote_count"] >= MIN_VOTES]
    return len(voted) >= MIN_PARTICIPANTS
