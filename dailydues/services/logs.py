# dailydues/services/logs.py
"""
Daily log lifecycle: create / update while pending or rejected, then a
single admin review that moves the log to approved or rejected.

Approval is the only place the user-commitment aggregate changes, and it
happens in the same transaction as the status transition.
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .. import db
from ..carry_over import StreakState, apply_approval, parse_date_key
from ..models.commitment import (
    LOG_APPROVED,
    LOG_PENDING,
    LOG_REJECTED,
    Commitment,
    DailyLog,
    Holiday,
    UserCommitment,
)
from ..notifier import should_notify_streak_milestone
from .errors import NotFound, StateConflict, ValidationError
from .identity import Actor, require_actor, require_admin
from .notify import notify_safely

logger = logging.getLogger(__name__)

DUPLICATE_LOG_MESSAGE = "Log already exists for this date. Please update instead."
ALREADY_PROCESSED_MESSAGE = "Log has already been processed"


# ------------------------------
# Helpers
# ------------------------------
def _validate_amount(completed_amount: Any, max_allowed: int) -> int:
    if isinstance(completed_amount, bool) or not isinstance(completed_amount, int):
        raise ValidationError("Completed amount must be a whole number")
    if completed_amount < 0:
        raise ValidationError("Completed amount cannot be negative")
    if completed_amount > max_allowed:
        raise ValidationError(
            f"Completed amount ({completed_amount}) exceeds maximum allowed ({max_allowed})"
        )
    return completed_amount


def _get_assignment(user_id: int, commitment_id: int) -> UserCommitment:
    assignment = UserCommitment.query.filter_by(user_id=user_id, commitment_id=commitment_id).first()
    if assignment is None:
        raise NotFound("Commitment not found or not assigned to you")
    return assignment


def is_holiday(realm_id: int, user_id: int, day: date) -> bool:
    """True when the realm, or this user within it, is off on `day`."""
    found = Holiday.query.filter(
        Holiday.realm_id == realm_id,
        Holiday.date == day,
        or_(Holiday.user_id.is_(None), Holiday.user_id == user_id),
    ).first()
    return found is not None


def _find_log(user_id: int, commitment_id: int, day: date) -> Optional[DailyLog]:
    return DailyLog.query.filter_by(user_id=user_id, commitment_id=commitment_id, date=day).first()


# ------------------------------
# Create / update
# ------------------------------
def create_log(
    actor: Actor,
    commitment_id: int,
    log_date,
    completed_amount: int,
    notifier=None,
) -> DailyLog:
    actor = require_actor(actor)
    day = parse_date_key(log_date)

    assignment = _get_assignment(actor.user_id, commitment_id)
    commitment = assignment.commitment
    if not commitment.is_active:
        raise ValidationError("Commitment is not active")

    target_amount = int(commitment.daily_target)
    carry_over = int(assignment.pending_carry_over or 0)
    completed_amount = _validate_amount(completed_amount, target_amount + carry_over)

    if is_holiday(commitment.realm_id, actor.user_id, day):
        raise ValidationError("Cannot log progress on a holiday")

    if _find_log(actor.user_id, commitment_id, day) is not None:
        raise StateConflict(DUPLICATE_LOG_MESSAGE)

    log = DailyLog(
        user_id=actor.user_id,
        commitment_id=commitment_id,
        date=day,
        target_amount=target_amount,
        carry_over_from_previous=carry_over,
        completed_amount=completed_amount,
        status=LOG_PENDING,
    )
    db.session.add(log)
    try:
        db.session.commit()
    except IntegrityError:
        # lost a race against a concurrent create for the same key
        db.session.rollback()
        raise StateConflict(DUPLICATE_LOG_MESSAGE)

    logger.info(
        "[logs/create] user=%s commitment=%s date=%s completed=%s/%s",
        actor.user_id, commitment_id, day, completed_amount, target_amount + carry_over,
    )
    notify_safely(
        notifier, "notify_commitment_logged",
        actor.name, commitment.name, completed_amount, commitment.unit,
    )
    return log


def update_log(
    actor: Actor,
    log_id: int,
    completed_amount: int,
    notifier=None,
) -> DailyLog:
    actor = require_actor(actor)

    log = db.session.get(DailyLog, log_id)
    if log is None or log.user_id != actor.user_id:
        raise NotFound("Log not found")
    if log.status == LOG_APPROVED:
        raise StateConflict("Cannot modify an approved log")

    # validated against the snapshot taken when the log was created
    completed_amount = _validate_amount(completed_amount, log.total_due)

    if is_holiday(log.commitment.realm_id, actor.user_id, log.date):
        raise ValidationError("Cannot log progress on a holiday")

    result = db.session.execute(
        update(DailyLog)
        .where(
            DailyLog.id == log_id,
            DailyLog.status.in_([LOG_PENDING, LOG_REJECTED]),
        )
        .values(
            completed_amount=completed_amount,
            status=LOG_PENDING,
            reviewed_by=None,
            reviewed_at=None,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise StateConflict("Cannot modify an approved log")
    db.session.commit()

    logger.info("[logs/update] log=%s completed=%s", log_id, completed_amount)
    notify_safely(
        notifier, "notify_commitment_logged",
        actor.name, log.commitment.name, completed_amount, log.commitment.unit,
    )
    return log


def log_progress(
    actor: Actor,
    commitment_id: int,
    log_date,
    completed_amount: int,
    existing_log_id: Optional[int] = None,
    notifier=None,
) -> DailyLog:
    """Update `existing_log_id` when given, otherwise create today's log."""
    if existing_log_id:
        return update_log(actor, existing_log_id, completed_amount, notifier=notifier)
    return create_log(actor, commitment_id, log_date, completed_amount, notifier=notifier)


# ------------------------------
# Review
# ------------------------------
def review_log(
    actor: Actor,
    log_id: int,
    approved: bool,
    notifier=None,
    now: Optional[datetime] = None,
) -> DailyLog:
    """
    Approve or reject a pending log.

    The log row is re-read under a row lock so the amount credited is the
    amount being approved. The status change is a conditional UPDATE that
    also pins that amount, so of two concurrent reviews (or a review racing
    a resubmission) exactly one matches a row; the other gets StateConflict
    and changes nothing.
    """
    actor = require_admin(actor, "Only admins can approve logs")

    log = (
        DailyLog.query.filter_by(id=log_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if log is None:
        raise NotFound("Log not found")
    if log.status != LOG_PENDING:
        raise StateConflict(ALREADY_PROCESSED_MESSAGE)

    completed_amount = log.completed_amount
    commitment = log.commitment
    assignment = None
    if approved:
        assignment = (
            UserCommitment.query.filter_by(user_id=log.user_id, commitment_id=log.commitment_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if assignment is None:
            raise NotFound("User commitment not found")

    now = now or datetime.utcnow()
    new_status = LOG_APPROVED if approved else LOG_REJECTED

    try:
        result = db.session.execute(
            update(DailyLog)
            .where(
                DailyLog.id == log_id,
                DailyLog.status == LOG_PENDING,
                DailyLog.completed_amount == completed_amount,
            )
            .values(
                status=new_status,
                reviewed_by=actor.user_id,
                reviewed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            raise StateConflict(ALREADY_PROCESSED_MESSAGE)

        state = None
        if approved:
            state = apply_approval(
                StreakState.from_row(assignment),
                log.target_amount,
                log.carry_over_from_previous,
                completed_amount,
                commitment.punishment_multiplier,
            )
            state.apply_to(assignment)

        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("[logs/review] log=%s rolled back", log_id)
        raise

    logger.info(
        "[logs/review] log=%s status=%s reviewer=%s", log_id, new_status, actor.user_id
    )

    user_name = log.user.name
    if approved:
        notify_safely(
            notifier, "notify_commitment_approved",
            user_name, commitment.name, completed_amount, commitment.unit,
        )
        if should_notify_streak_milestone(state.current_streak):
            notify_safely(notifier, "notify_streak_milestone", user_name, state.current_streak)
    else:
        notify_safely(notifier, "notify_commitment_rejected", user_name, commitment.name)
    return log


# ------------------------------
# Queries
# ------------------------------
def list_pending_logs(actor: Actor, realm_id: Optional[int] = None) -> List[Dict[str, Any]]:
    require_admin(actor, "Only admins can view pending approvals")

    query = (
        DailyLog.query.join(Commitment, DailyLog.commitment_id == Commitment.id)
        .filter(DailyLog.status == LOG_PENDING)
        .order_by(DailyLog.created_at.desc(), DailyLog.id.desc())
    )
    if realm_id is not None:
        query = query.filter(Commitment.realm_id == realm_id)

    payload = []
    for log in query.all():
        item = log.to_dict()
        item["user"] = log.user.to_public_dict()
        item["commitment"] = log.commitment.to_dict()
        payload.append(item)
    return payload


def list_logs_for_day(actor: Actor, day) -> List[DailyLog]:
    actor = require_actor(actor)
    day = parse_date_key(day)
    return (
        DailyLog.query.filter_by(user_id=actor.user_id, date=day)
        .order_by(DailyLog.commitment_id)
        .all()
    )
