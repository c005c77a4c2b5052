# dailydues/models/challenge.py
from datetime import datetime
from typing import Dict, Optional
from .. import db
from .columns import BigId

CHALLENGE_ACTIVE = "active"
CHALLENGE_ARCHIVED = "archived"


class Challenge(db.Model):
    __tablename__ = "challenges"

    id = db.Column(BigId, primary_key=True)
    realm_id = db.Column(BigId, db.ForeignKey("realms.id"), nullable=False)
    commitment_id = db.Column(BigId, db.ForeignKey("commitments.id"), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(255))
    duration_hours = db.Column(db.Integer, nullable=False)
    max_units = db.Column(db.Integer, nullable=False)
    status = db.Column(
        db.Enum(CHALLENGE_ACTIVE, CHALLENGE_ARCHIVED, name="challenge_status"),
        nullable=False,
        default=CHALLENGE_ACTIVE,
    )
    starts_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    ends_at = db.Column(db.DateTime, nullable=False)
    created_by = db.Column(BigId, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    commitment = db.relationship(
        "Commitment",
        backref=db.backref("challenges", cascade="all, delete-orphan"),
    )
    members = db.relationship(
        "ChallengeMember",
        back_populates="challenge",
        cascade="all, delete-orphan",
    )

    @property
    def is_archived(self) -> bool:
        return self.status == CHALLENGE_ARCHIVED

    def has_ended(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return now >= self.ends_at

    def is_open(self, now: Optional[datetime] = None) -> bool:
        """Active and not past ends_at; join and vote require this."""
        return self.status == CHALLENGE_ACTIVE and not self.has_ended(now)

    def to_dict(self):
        return {
            "id": self.id,
            "realm_id": self.realm_id,
            "commitment_id": self.commitment_id,
            "name": self.name,
            "description": self.description,
            "duration_hours": self.duration_hours,
            "max_units": self.max_units,
            "status": self.status,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "created_by": self.created_by,
        }


class ChallengeMember(db.Model):
    __tablename__ = "challenge_members"
    __table_args__ = (
        db.UniqueConstraint("challenge_id", "user_id", name="uq_challenge_member"),
    )

    id = db.Column(BigId, primary_key=True)
    challenge_id = db.Column(BigId, db.ForeignKey("challenges.id"), nullable=False)
    user_id = db.Column(BigId, db.ForeignKey("users.id"), nullable=False)
    # frozen when the challenge is archived
    final_reps = db.Column(db.Integer)
    joined_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    challenge = db.relationship("Challenge", back_populates="members")
    user = db.relationship("User", backref="challenge_memberships")
    vote_rows = db.relationship(
        "ChallengeVote",
        back_populates="member",
        cascade="all, delete-orphan",
    )

    @property
    def votes(self) -> Dict[int, int]:
        """voter user id -> reps that voter credits this member with."""
        return {v.voter_id: v.reps for v in self.vote_rows}


class ChallengeVote(db.Model):
    """One entry of a member's votes mapping, keyed by (member, voter)."""
    __tablename__ = "challenge_votes"
    __table_args__ = (
        db.UniqueConstraint("member_id", "voter_id", name="uq_challenge_vote"),
    )

    id = db.Column(BigId, primary_key=True)
    member_id = db.Column(BigId, db.ForeignKey("challenge_members.id"), nullable=False)
    voter_id = db.Column(BigId, db.ForeignKey("users.id"), nullable=False)
    reps = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    member = db.relationship("ChallengeMember", back_populates="vote_rows")
