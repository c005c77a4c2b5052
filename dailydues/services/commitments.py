# dailydues/services/commitments.py
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional

from .. import db
from ..carry_over import DEFAULT_WORK_DAYS, validate_active_days
from ..models.commitment import Commitment, UserCommitment
from ..models.realm import Realm
from ..models.user import User
from .errors import NotFound, ValidationError
from .identity import Actor, member_realm_ids, require_actor, require_admin, require_realm_member

logger = logging.getLogger(__name__)

ADMIN_ONLY = "Only admins can manage commitments"


# ------------------------------
# Validation
# ------------------------------
def _name(value: Any, message: str) -> str:
    value = (value or "").strip() if isinstance(value, str) else ""
    if not value:
        raise ValidationError(message)
    return value


def _daily_target(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError("Daily target must be positive")
    return value


def _multiplier(value: Any) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise ValidationError("Punishment multiplier must be a number")
    try:
        multiplier = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError("Punishment multiplier must be a number")
    if not multiplier.is_finite() or multiplier < 1:
        raise ValidationError("Punishment multiplier must be at least 1")
    return multiplier


def _get_commitment(commitment_id: int) -> Commitment:
    commitment = db.session.get(Commitment, commitment_id)
    if commitment is None:
        raise NotFound("Commitment not found")
    return commitment


# ------------------------------
# Commitments
# ------------------------------
def create_commitment(
    actor: Actor,
    realm_id: int,
    name: str,
    daily_target: int,
    unit: str = "reps",
    active_days: Optional[Iterable[int]] = None,
    punishment_multiplier: Any = 1,
    description: Optional[str] = None,
) -> Commitment:
    actor = require_admin(actor, ADMIN_ONLY)

    name = _name(name, "Name is required")
    daily_target = _daily_target(daily_target)
    multiplier = _multiplier(punishment_multiplier)
    days = validate_active_days(list(active_days) if active_days is not None else DEFAULT_WORK_DAYS)

    if db.session.get(Realm, realm_id) is None:
        raise NotFound("Realm not found")

    commitment = Commitment(
        realm_id=realm_id,
        name=name,
        description=(description or "").strip() or None,
        daily_target=daily_target,
        unit=(unit or "reps").strip() or "reps",
        active_days=days,
        punishment_multiplier=multiplier,
        created_by=actor.user_id,
    )
    db.session.add(commitment)
    db.session.commit()

    logger.info("[commitments/create] id=%s realm=%s target=%s", commitment.id, realm_id, daily_target)
    return commitment


def update_commitment(actor: Actor, commitment_id: int, **changes) -> Commitment:
    """
    Admin edit. Existing logs keep their target snapshot; only logs created
    afterwards see a new daily_target.
    """
    require_admin(actor, ADMIN_ONLY)

    values = {}
    if "name" in changes:
        values["name"] = _name(changes["name"], "Name cannot be empty")
    if "description" in changes:
        values["description"] = (changes["description"] or "").strip() or None
    if "daily_target" in changes:
        values["daily_target"] = _daily_target(changes["daily_target"])
    if "unit" in changes:
        values["unit"] = _name(changes["unit"], "Unit cannot be empty")
    if "punishment_multiplier" in changes:
        values["punishment_multiplier"] = _multiplier(changes["punishment_multiplier"])
    if "active_days" in changes:
        values["active_days"] = validate_active_days(list(changes["active_days"] or []))

    commitment = _get_commitment(commitment_id)
    for field, value in values.items():
        setattr(commitment, field, value)
    db.session.commit()

    logger.info("[commitments/update] id=%s fields=%s", commitment_id, sorted(values))
    return commitment


def set_commitment_active(actor: Actor, commitment_id: int, is_active: bool) -> Commitment:
    require_admin(actor, ADMIN_ONLY)
    commitment = _get_commitment(commitment_id)
    commitment.is_active = bool(is_active)
    db.session.commit()
    return commitment


def delete_commitment(actor: Actor, commitment_id: int) -> None:
    require_admin(actor, ADMIN_ONLY)
    commitment = _get_commitment(commitment_id)
    db.session.delete(commitment)
    db.session.commit()
    logger.info("[commitments/delete] id=%s", commitment_id)


def list_commitments(
    actor: Actor,
    realm_id: Optional[int] = None,
    active_only: bool = False,
) -> List[Commitment]:
    actor = require_actor(actor)
    query = Commitment.query.order_by(Commitment.created_at.desc(), Commitment.id.desc())
    if realm_id is not None:
        require_realm_member(actor, realm_id)
        query = query.filter_by(realm_id=realm_id)
    elif not actor.is_admin:
        query = query.filter(Commitment.realm_id.in_(member_realm_ids(actor.user_id)))
    if active_only:
        query = query.filter_by(is_active=True)
    return query.all()


# ------------------------------
# Assignments
# ------------------------------
def assign_user_commitments(actor: Actor, user_id: int, commitment_ids: Iterable[int]) -> List[UserCommitment]:
    """
    Make `commitment_ids` the user's full set of assignments. Revoked
    assignments lose their aggregate; new ones start from zero.
    """
    require_admin(actor, "Only admins can manage assignments")

    wanted = list(dict.fromkeys(commitment_ids))
    if db.session.get(User, user_id) is None:
        raise NotFound("User not found")

    if wanted:
        found = {c.id for c in Commitment.query.filter(Commitment.id.in_(wanted)).all()}
        if len(found) != len(wanted):
            raise NotFound("One or more commitments not found")

    current = {a.commitment_id for a in UserCommitment.query.filter_by(user_id=user_id).all()}
    to_remove = current - set(wanted)
    to_add = [cid for cid in wanted if cid not in current]

    if to_remove:
        UserCommitment.query.filter(
            UserCommitment.user_id == user_id,
            UserCommitment.commitment_id.in_(to_remove),
        ).delete(synchronize_session=False)
    for cid in to_add:
        db.session.add(UserCommitment(user_id=user_id, commitment_id=cid))
    db.session.commit()

    logger.info("[assignments] user=%s added=%s removed=%s", user_id, to_add, sorted(to_remove))
    return UserCommitment.query.filter_by(user_id=user_id).order_by(UserCommitment.id).all()


def list_user_commitments(actor: Actor, user_id: Optional[int] = None) -> List[UserCommitment]:
    """The actor's own assignments; admins may look at anyone's."""
    actor = require_actor(actor)
    if user_id is None:
        user_id = actor.user_id
    elif user_id != actor.user_id:
        require_admin(actor, "Only admins can view other users' commitments")
    return UserCommitment.query.filter_by(user_id=user_id).order_by(UserCommitment.id).all()
