# dailydues/models/realm.py
from datetime import datetime
from .. import db
from .columns import BigId


class Realm(db.Model):
    __tablename__ = "realms"

    id = db.Column(BigId, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False)
    avatar_url = db.Column(db.String(255))
    created_by = db.Column(BigId, db.ForeignKey("users.id"))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    members = db.relationship(
        "UserRealm", back_populates="realm", cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "avatar_url": self.avatar_url,
            "member_count": len(self.members),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class UserRealm(db.Model):
    __tablename__ = "user_realms"
    __table_args__ = (
        db.UniqueConstraint("user_id", "realm_id", name="uq_user_realm"),
    )

    id = db.Column(BigId, primary_key=True)
    user_id = db.Column(BigId, db.ForeignKey("users.id"), nullable=False)
    realm_id = db.Column(BigId, db.ForeignKey("realms.id"), nullable=False)
    joined_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    realm = db.relationship("Realm", back_populates="members")
    user = db.relationship("User", backref="realm_memberships")
