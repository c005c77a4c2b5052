# dailydues/services/identity.py
from dataclasses import dataclass
from typing import List, Optional

from flask_jwt_extended import get_jwt_identity

from .. import db
from ..models.realm import UserRealm
from ..models.user import ROLE_ADMIN, User
from .errors import NotAuthenticated, NotAuthorized


@dataclass(frozen=True)
class Actor:
    """Who is calling: the authenticated user's id and role."""
    user_id: int
    role: str
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, role=user.role, name=user.name)


def current_actor() -> Actor:
    """Resolve the JWT identity of the current request to an Actor."""
    identity = get_jwt_identity()
    if identity is None:
        raise NotAuthenticated("Not authenticated")
    try:
        user_id = int(identity)
    except (TypeError, ValueError):
        raise NotAuthenticated("Not authenticated")

    user = db.session.get(User, user_id)
    if user is None:
        raise NotAuthenticated("Not authenticated")
    return Actor.from_user(user)


def require_actor(actor: Optional[Actor]) -> Actor:
    if actor is None:
        raise NotAuthenticated("Not authenticated")
    return actor


def require_admin(actor: Optional[Actor], message: str = "Admin access required") -> Actor:
    actor = require_actor(actor)
    if not actor.is_admin:
        raise NotAuthorized(message)
    return actor


# ------------------------------
# Realm membership
# ------------------------------
def member_realm_ids(user_id: int) -> List[int]:
    return sorted(m.realm_id for m in UserRealm.query.filter_by(user_id=user_id).all())


def is_realm_member(actor: Actor, realm_id: int) -> bool:
    if actor.is_admin:
        return True
    return UserRealm.query.filter_by(user_id=actor.user_id, realm_id=realm_id).first() is not None


def require_realm_member(
    actor: Optional[Actor],
    realm_id: int,
    message: str = "You are not a member of this realm",
) -> Actor:
    """Admins pass; everyone else must belong to the realm."""
    actor = require_actor(actor)
    if not is_realm_member(actor, realm_id):
        raise NotAuthorized(message)
    return actor
