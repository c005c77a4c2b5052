# dailydues/services/leaderboard.py
import logging
from collections import defaultdict
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func

from .. import db
from ..carry_over import format_date_key
from ..leaderboard import (
    SORT_MODES,
    SORT_STREAK,
    completion_percentage,
    sort_entries,
    today_status,
    with_ranks,
)
from ..models.commitment import LOG_APPROVED, Commitment, DailyLog, UserCommitment
from ..models.realm import Realm, UserRealm
from ..models.user import ROLE_USER, User
from .errors import NotFound, ValidationError
from .identity import Actor, member_realm_ids, require_actor, require_admin, require_realm_member
from .notify import notify_safely

logger = logging.getLogger(__name__)


def _todays_logs(commitment_ids, today: date):
    """(user_id, commitment_id) -> (statuses, earliest approval time)."""
    statuses = defaultdict(set)
    approved_at = {}
    if not commitment_ids:
        return statuses, approved_at

    rows = DailyLog.query.filter(
        DailyLog.date == today,
        DailyLog.commitment_id.in_(commitment_ids),
    ).all()
    for log in rows:
        key = (log.user_id, log.commitment_id)
        statuses[key].add(log.status)
        if log.status == LOG_APPROVED and log.reviewed_at is not None:
            if key not in approved_at or log.reviewed_at < approved_at[key]:
                approved_at[key] = log.reviewed_at
    return statuses, approved_at


def get_leaderboard(
    actor: Actor,
    commitment_id: Optional[int] = None,
    realm_id: Optional[int] = None,
    sort_by: str = SORT_STREAK,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """
    Ranked user-commitment aggregates of non-admin users, each with a
    today_status (not_due / not_logged / pending / approved).

    Non-admins only see realms they belong to.
    """
    actor = require_actor(actor)
    if sort_by not in SORT_MODES:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORT_MODES)}")
    today = today or date.today()

    query = (
        db.session.query(UserCommitment, User, Commitment)
        .join(User, UserCommitment.user_id == User.id)
        .join(Commitment, UserCommitment.commitment_id == Commitment.id)
        .filter(User.role == ROLE_USER)
        .order_by(UserCommitment.id)
    )
    if commitment_id is not None:
        commitment = db.session.get(Commitment, commitment_id)
        if commitment is None:
            raise NotFound("Commitment not found")
        require_realm_member(actor, commitment.realm_id)
        query = query.filter(UserCommitment.commitment_id == commitment_id)
    if realm_id is not None:
        require_realm_member(actor, realm_id)
        query = query.filter(Commitment.realm_id == realm_id)
    if commitment_id is None and realm_id is None and not actor.is_admin:
        query = query.filter(Commitment.realm_id.in_(member_realm_ids(actor.user_id)))
    rows = query.all()

    statuses, approved_at = _todays_logs({c.id for _, _, c in rows}, today)

    entries = []
    for assignment, user, commitment in rows:
        key = (user.id, commitment.id)
        entries.append(
            {
                "user": user.to_public_dict(),
                "user_name": user.name,
                "commitment_id": commitment.id,
                "commitment_name": commitment.name,
                "unit": commitment.unit,
                "current_streak": assignment.current_streak,
                "best_streak": assignment.best_streak,
                "total_completed": assignment.total_completed,
                "pending_carry_over": assignment.pending_carry_over,
                "total_due": commitment.daily_target + assignment.pending_carry_over,
                "today_status": today_status(commitment.active_days or [], today, statuses.get(key, ())),
                "completed_at": approved_at.get(key),
            }
        )

    entries = with_ranks(sort_entries(entries, sort_by))
    for entry in entries:
        if entry["completed_at"] is not None:
            entry["completed_at"] = entry["completed_at"].isoformat()
    return entries


def _realm_progress(realm: Realm, today: date) -> Dict[str, Any]:
    total_users = (
        db.session.query(func.count(UserRealm.id))
        .select_from(UserRealm)
        .join(User, UserRealm.user_id == User.id)
        .filter(UserRealm.realm_id == realm.id, User.role == ROLE_USER)
        .scalar()
    )
    # members with at least one approved log today on this realm's commitments
    completed_users = (
        db.session.query(func.count(func.distinct(DailyLog.user_id)))
        .select_from(DailyLog)
        .join(Commitment, DailyLog.commitment_id == Commitment.id)
        .join(
            UserRealm,
            (UserRealm.user_id == DailyLog.user_id) & (UserRealm.realm_id == realm.id),
        )
        .join(User, DailyLog.user_id == User.id)
        .filter(
            Commitment.realm_id == realm.id,
            DailyLog.date == today,
            DailyLog.status == LOG_APPROVED,
            User.role == ROLE_USER,
        )
        .scalar()
    )
    total_users = int(total_users or 0)
    completed_users = int(completed_users or 0)
    return {
        "realm": realm.to_dict(),
        "date": format_date_key(today),
        "total_users": total_users,
        "completed_users": completed_users,
        "percentage": completion_percentage(completed_users, total_users),
    }


def get_realm_stats(
    actor: Actor,
    realm_id: Optional[int] = None,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Today's progress per realm: how many members have an approved log."""
    actor = require_actor(actor)
    today = today or date.today()

    if realm_id is not None:
        require_realm_member(actor, realm_id)
        realm = db.session.get(Realm, realm_id)
        if realm is None:
            raise NotFound("Realm not found")
        realms = [realm]
    else:
        query = Realm.query.order_by(Realm.name, Realm.id)
        if not actor.is_admin:
            query = query.filter(Realm.id.in_(member_realm_ids(actor.user_id)))
        realms = query.all()

    return [_realm_progress(realm, today) for realm in realms]


def share_leaderboard(
    actor: Actor,
    commitment_id: int,
    sort_by: str = SORT_STREAK,
    notifier=None,
) -> bool:
    require_admin(actor, "Admin access required")

    commitment = db.session.get(Commitment, commitment_id)
    if commitment is None:
        raise NotFound("Commitment not found")

    entries = get_leaderboard(actor, commitment_id=commitment_id, sort_by=sort_by)
    if not entries:
        raise ValidationError("No leaderboard entries to share")

    sent = notify_safely(
        notifier, "send_leaderboard", commitment.name, commitment.unit, entries, sort_by
    )
    logger.info("[leaderboard/share] commitment=%s entries=%s sent=%s", commitment_id, len(entries), sent)
    return sent
