# dailydues/services/challenges.py
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from .. import db
from ..consensus import agreed_score, check_vote, is_valid_result, sort_challenge_entries
from ..models.challenge import (
    CHALLENGE_ACTIVE,
    CHALLENGE_ARCHIVED,
    Challenge,
    ChallengeMember,
    ChallengeVote,
)
from ..models.commitment import Commitment
from ..models.realm import Realm
from .errors import NotAuthorized, NotFound, StateConflict, ValidationError
from .identity import Actor, member_realm_ids, require_actor, require_admin, require_realm_member

logger = logging.getLogger(__name__)


# ------------------------------
# Helpers
# ------------------------------
def _get_challenge(challenge_id: int) -> Challenge:
    challenge = db.session.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFound("Challenge not found")
    return challenge


def _ensure_open(challenge: Challenge, now: datetime) -> None:
    if challenge.status != CHALLENGE_ACTIVE:
        raise StateConflict("Challenge is not active")
    if challenge.has_ended(now):
        raise StateConflict("Challenge has ended")


def _get_member(challenge_id: int, user_id: int) -> Optional[ChallengeMember]:
    return ChallengeMember.query.filter_by(challenge_id=challenge_id, user_id=user_id).first()


def _positive_int(value: Any, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{label} must be positive")
    return value


# ------------------------------
# Create
# ------------------------------
def create_challenge(
    actor: Actor,
    realm_id: int,
    commitment_id: int,
    name: str,
    duration_hours: int,
    max_units: int,
    description: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Challenge:
    actor = require_admin(actor, "Only admins can manage challenges")

    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required")
    duration_hours = _positive_int(duration_hours, "Duration")
    max_units = _positive_int(max_units, "Max units")

    if db.session.get(Realm, realm_id) is None:
        raise NotFound("Realm not found")
    commitment = db.session.get(Commitment, commitment_id)
    if commitment is None:
        raise NotFound("Commitment not found")
    if commitment.realm_id != realm_id:
        raise ValidationError("Commitment does not belong to this realm")

    starts_at = now or datetime.utcnow()
    challenge = Challenge(
        realm_id=realm_id,
        commitment_id=commitment_id,
        name=name,
        description=(description or "").strip() or None,
        duration_hours=duration_hours,
        max_units=max_units,
        status=CHALLENGE_ACTIVE,
        starts_at=starts_at,
        ends_at=starts_at + timedelta(hours=duration_hours),
        created_by=actor.user_id,
    )
    db.session.add(challenge)
    db.session.commit()

    logger.info("[challenges/create] id=%s realm=%s ends_at=%s", challenge.id, realm_id, challenge.ends_at)
    return challenge


# ------------------------------
# Join / vote
# ------------------------------
def join_challenge(actor: Actor, challenge_id: int, now: Optional[datetime] = None) -> ChallengeMember:
    actor = require_actor(actor)
    now = now or datetime.utcnow()

    challenge = _get_challenge(challenge_id)
    require_realm_member(actor, challenge.realm_id)
    _ensure_open(challenge, now)

    if _get_member(challenge_id, actor.user_id) is not None:
        raise StateConflict("Already joined this challenge")

    member = ChallengeMember(challenge_id=challenge_id, user_id=actor.user_id, joined_at=now)
    db.session.add(member)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise StateConflict("Already joined this challenge")

    logger.info("[challenges/join] challenge=%s user=%s", challenge_id, actor.user_id)
    return member


def _raise_vote(member_id: int, voter_id: int, reps: int, now: datetime) -> bool:
    """Overwrite the voter's entry only if it does not go down."""
    result = db.session.execute(
        update(ChallengeVote)
        .where(
            ChallengeVote.member_id == member_id,
            ChallengeVote.voter_id == voter_id,
            ChallengeVote.reps <= reps,
        )
        .values(reps=reps, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _current_vote(member_id: int, voter_id: int) -> Optional[int]:
    return (
        db.session.query(ChallengeVote.reps)
        .filter_by(member_id=member_id, voter_id=voter_id)
        .scalar()
    )


def submit_vote(
    actor: Actor,
    challenge_id: int,
    target_user_id: int,
    reps: int,
    now: Optional[datetime] = None,
) -> Dict[int, int]:
    """Store the actor's rep count for another member; returns that member's votes."""
    actor = require_actor(actor)
    now = now or datetime.utcnow()

    challenge = _get_challenge(challenge_id)
    require_realm_member(actor, challenge.realm_id)
    _ensure_open(challenge, now)

    if _get_member(challenge_id, actor.user_id) is None:
        raise NotAuthorized("You must join the challenge to vote")
    target = _get_member(challenge_id, target_user_id)
    if target is None:
        raise NotFound("Target user is not in this challenge")

    member_id = target.id
    previous = _current_vote(member_id, actor.user_id)
    check_vote(actor.user_id, target_user_id, reps, challenge.max_units, previous)

    if previous is not None:
        stored = _raise_vote(member_id, actor.user_id, reps, now)
    else:
        db.session.add(
            ChallengeVote(member_id=member_id, voter_id=actor.user_id, reps=reps, updated_at=now)
        )
        try:
            db.session.flush()
            stored = True
        except IntegrityError:
            # a concurrent first vote landed; nothing else was written yet,
            # so start over with the guarded overwrite
            db.session.rollback()
            stored = _raise_vote(member_id, actor.user_id, reps, now)

    if not stored:
        current = _current_vote(member_id, actor.user_id)
        db.session.rollback()
        raise StateConflict(f"Votes can only increase. Current vote: {current}")

    db.session.commit()
    logger.info(
        "[challenges/vote] challenge=%s voter=%s target=%s reps=%s",
        challenge_id, actor.user_id, target_user_id, reps,
    )
    return target.votes


# ------------------------------
# Archive
# ------------------------------
def archive_challenge(actor: Actor, challenge_id: int) -> Challenge:
    """active -> archived, freezing every member's final_reps."""
    require_admin(actor, "Only admins can manage challenges")

    challenge = _get_challenge(challenge_id)
    if challenge.status == CHALLENGE_ARCHIVED:
        raise StateConflict("Challenge is already archived")

    result = db.session.execute(
        update(Challenge)
        .where(Challenge.id == challenge_id, Challenge.status == CHALLENGE_ACTIVE)
        .values(status=CHALLENGE_ARCHIVED)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise StateConflict("Challenge is already archived")

    for member in challenge.members:
        member.final_reps = agreed_score(member.votes)
    db.session.commit()

    logger.info("[challenges/archive] id=%s members=%s", challenge_id, len(challenge.members))
    return challenge


# ------------------------------
# Queries
# ------------------------------
def list_challenges(
    actor: Actor,
    realm_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    actor = require_actor(actor)
    now = now or datetime.utcnow()

    member_count = (
        select(func.count(ChallengeMember.id))
        .where(ChallengeMember.challenge_id == Challenge.id)
        .correlate(Challenge)
        .scalar_subquery()
    )
    query = db.session.query(Challenge, member_count).order_by(
        Challenge.created_at.desc(), Challenge.id.desc()
    )
    if realm_id is not None:
        require_realm_member(actor, realm_id)
        query = query.filter(Challenge.realm_id == realm_id)
    elif not actor.is_admin:
        query = query.filter(Challenge.realm_id.in_(member_realm_ids(actor.user_id)))

    joined = {m.challenge_id for m in ChallengeMember.query.filter_by(user_id=actor.user_id).all()}

    payload = []
    for challenge, count in query.all():
        item = challenge.to_dict()
        commitment = challenge.commitment
        item["commitment"] = {
            "name": commitment.name if commitment else "Unknown",
            "unit": commitment.unit if commitment else "reps",
        }
        item["member_count"] = int(count or 0)
        item["is_member"] = challenge.id in joined
        item["has_ended"] = challenge.has_ended(now)
        item["is_open"] = challenge.is_open(now)
        payload.append(item)
    return payload


def get_challenge_leaderboard(actor: Actor, challenge_id: int) -> Dict[str, Any]:
    actor = require_actor(actor)
    challenge = _get_challenge(challenge_id)
    require_realm_member(actor, challenge.realm_id)

    entries = []
    for member in challenge.members:
        votes = member.votes
        user = member.user
        entries.append(
            {
                "user_id": member.user_id,
                "user_name": user.name if user else "Unknown",
                "user_avatar_url": user.avatar_url if user else None,
                "votes": {str(voter): reps for voter, reps in votes.items()},
                "vote_count": len(votes),
                "agreed_reps": agreed_score(votes),
                "final_reps": member.final_reps,
            }
        )

    entries = sort_challenge_entries(entries, archived=challenge.is_archived)
    commitment = challenge.commitment
    return {
        "challenge": challenge.to_dict(),
        "commitment_name": commitment.name if commitment else "Unknown",
        "commitment_unit": commitment.unit if commitment else "reps",
        "entries": entries,
        "is_valid": is_valid_result(entries),
        "current_user_id": actor.user_id,
    }
