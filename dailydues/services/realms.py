# dailydues/services/realms.py
import logging
import re
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from .. import db
from ..carry_over import parse_date_key
from ..models.commitment import Holiday
from ..models.realm import Realm, UserRealm
from ..models.user import User
from .errors import NotFound, StateConflict, ValidationError
from .identity import Actor, require_actor, require_admin, require_realm_member

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def _get_realm(realm_id: int) -> Realm:
    realm = db.session.get(Realm, realm_id)
    if realm is None:
        raise NotFound("Realm not found")
    return realm


def _is_member(realm_id: int, user_id: int) -> bool:
    return UserRealm.query.filter_by(realm_id=realm_id, user_id=user_id).first() is not None


# ------------------------------
# Realms
# ------------------------------
def create_realm(actor: Actor, name: str, slug: str, avatar_url: Optional[str] = None) -> Realm:
    actor = require_admin(actor, "Only admins can manage realms")

    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required")
    slug = (slug or "").strip().lower()
    if not SLUG_RE.match(slug):
        raise ValidationError("Slug may only contain lowercase letters, digits and dashes")
    if Realm.query.filter_by(slug=slug).first() is not None:
        raise StateConflict("Slug already in use")

    realm = Realm(name=name, slug=slug, avatar_url=avatar_url or None, created_by=actor.user_id)
    db.session.add(realm)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise StateConflict("Slug already in use")

    logger.info("[realms/create] id=%s slug=%s", realm.id, slug)
    return realm


def list_realms(actor: Actor) -> List[Realm]:
    """Admins see every realm; users see the realms they belong to."""
    actor = require_actor(actor)
    query = Realm.query.order_by(Realm.created_at.desc(), Realm.id.desc())
    if not actor.is_admin:
        query = query.join(UserRealm, UserRealm.realm_id == Realm.id).filter(
            UserRealm.user_id == actor.user_id
        )
    return query.all()


def add_realm_member(actor: Actor, realm_id: int, user_id: int) -> UserRealm:
    require_admin(actor, "Only admins can manage realms")
    _get_realm(realm_id)
    if db.session.get(User, user_id) is None:
        raise NotFound("User not found")
    if _is_member(realm_id, user_id):
        raise StateConflict("User is already in this realm")

    membership = UserRealm(realm_id=realm_id, user_id=user_id)
    db.session.add(membership)
    db.session.commit()
    return membership


# ------------------------------
# Holidays
# ------------------------------
def create_holiday(
    actor: Actor,
    realm_id: int,
    date,
    description: str,
    user_id: Optional[int] = None,
) -> Holiday:
    """A realm-wide day off, or a personal one when `user_id` is given."""
    actor = require_admin(actor, "Only admins can manage holidays")

    description = (description or "").strip()
    if not description:
        raise ValidationError("Description is required")
    day = parse_date_key(date)

    _get_realm(realm_id)
    if user_id is not None:
        if db.session.get(User, user_id) is None:
            raise NotFound("User not found")
        if not _is_member(realm_id, user_id):
            raise ValidationError("User is not in this realm")

    # NULL user ids never collide in the unique index, check explicitly
    clash = Holiday.query.filter(
        Holiday.realm_id == realm_id,
        Holiday.date == day,
        Holiday.user_id.is_(None) if user_id is None else Holiday.user_id == user_id,
    ).first()
    if clash is not None:
        raise StateConflict("A holiday already exists for this date")

    holiday = Holiday(
        realm_id=realm_id,
        user_id=user_id,
        date=day,
        description=description,
        created_by=actor.user_id,
    )
    db.session.add(holiday)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise StateConflict("A holiday already exists for this date")

    logger.info("[holidays/create] realm=%s user=%s date=%s", realm_id, user_id, day)
    return holiday


def delete_holiday(actor: Actor, holiday_id: int) -> None:
    require_admin(actor, "Only admins can manage holidays")
    holiday = db.session.get(Holiday, holiday_id)
    if holiday is None:
        raise NotFound("Holiday not found")
    db.session.delete(holiday)
    db.session.commit()


def list_holidays(actor: Actor, realm_id: int) -> List[Holiday]:
    actor = require_actor(actor)
    _get_realm(realm_id)
    require_realm_member(actor, realm_id)
    return Holiday.query.filter_by(realm_id=realm_id).order_by(Holiday.date).all()
