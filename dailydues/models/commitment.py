# dailydues/models/commitment.py
from datetime import datetime
from .. import db
from ..carry_over import DAY_NAMES, DEFAULT_WORK_DAYS
from .columns import BigId

LOG_PENDING = "pending"
LOG_APPROVED = "approved"
LOG_REJECTED = "rejected"


def _iso(value):
    return value.isoformat() if value else None


# -----------------------------
# Commitments
# -----------------------------
class Commitment(db.Model):
    __tablename__ = "commitments"

    id = db.Column(BigId, primary_key=True)
    realm_id = db.Column(BigId, db.ForeignKey("realms.id"), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(255))
    daily_target = db.Column(db.Integer, nullable=False)
    unit = db.Column(db.String(50), nullable=False, default="reps")
    # weekday ints, 0 = Sunday .. 6 = Saturday
    active_days = db.Column(db.JSON, nullable=False, default=lambda: list(DEFAULT_WORK_DAYS))
    punishment_multiplier = db.Column(db.Numeric(6, 2), nullable=False, default=1)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(BigId, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    realm = db.relationship("Realm", backref="commitments")
    assignments = db.relationship(
        "UserCommitment", back_populates="commitment", cascade="all, delete-orphan"
    )
    logs = db.relationship(
        "DailyLog", back_populates="commitment", cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "realm_id": self.realm_id,
            "name": self.name,
            "description": self.description,
            "daily_target": self.daily_target,
            "unit": self.unit,
            "active_days": sorted(self.active_days or []),
            "active_day_names": [DAY_NAMES[d] for d in sorted(self.active_days or [])],
            "punishment_multiplier": float(self.punishment_multiplier),
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }


class UserCommitment(db.Model):
    """
    Assignment of a commitment to a user, plus the rolling aggregate
    (streak, totals, pending debt). Only log approval mutates the aggregate.
    """
    __tablename__ = "user_commitments"
    __table_args__ = (
        db.UniqueConstraint("user_id", "commitment_id", name="uq_user_commitment"),
    )

    id = db.Column(BigId, primary_key=True)
    user_id = db.Column(BigId, db.ForeignKey("users.id"), nullable=False)
    commitment_id = db.Column(BigId, db.ForeignKey("commitments.id"), nullable=False)
    pending_carry_over = db.Column(db.Integer, nullable=False, default=0)
    total_completed = db.Column(db.Integer, nullable=False, default=0)
    current_streak = db.Column(db.Integer, nullable=False, default=0)
    best_streak = db.Column(db.Integer, nullable=False, default=0)
    assigned_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    user = db.relationship("User", backref="user_commitments")
    commitment = db.relationship("Commitment", back_populates="assignments")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "commitment_id": self.commitment_id,
            "pending_carry_over": self.pending_carry_over,
            "total_completed": self.total_completed,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
            "assigned_at": _iso(self.assigned_at),
        }


# -----------------------------
# Daily logs
# -----------------------------
class DailyLog(db.Model):
    __tablename__ = "daily_logs"
    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "commitment_id", "date", name="uq_daily_log_user_commitment_date"
        ),
    )

    id = db.Column(BigId, primary_key=True)
    user_id = db.Column(BigId, db.ForeignKey("users.id"), nullable=False)
    commitment_id = db.Column(BigId, db.ForeignKey("commitments.id"), nullable=False)
    date = db.Column(db.Date, nullable=False)
    # snapshots taken at creation, never recomputed
    target_amount = db.Column(db.Integer, nullable=False)
    carry_over_from_previous = db.Column(db.Integer, nullable=False, default=0)
    completed_amount = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(
        db.Enum(LOG_PENDING, LOG_APPROVED, LOG_REJECTED, name="log_status"),
        nullable=False,
        default=LOG_PENDING,
    )
    reviewed_by = db.Column(BigId, db.ForeignKey("users.id"))
    reviewed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    user = db.relationship("User", foreign_keys=[user_id], backref="daily_logs")
    reviewer = db.relationship("User", foreign_keys=[reviewed_by])
    commitment = db.relationship("Commitment", back_populates="logs")

    @property
    def total_due(self) -> int:
        return self.target_amount + self.carry_over_from_previous

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "commitment_id": self.commitment_id,
            "date": _iso(self.date),
            "target_amount": self.target_amount,
            "carry_over_from_previous": self.carry_over_from_previous,
            "total_due": self.total_due,
            "completed_amount": self.completed_amount,
            "status": self.status,
            "reviewed_by": self.reviewed_by,
            "reviewed_at": _iso(self.reviewed_at),
            "created_at": _iso(self.created_at),
        }


# -----------------------------
# Holidays
# -----------------------------
class Holiday(db.Model):
    """A day off for a whole realm (user_id NULL) or for one member."""
    __tablename__ = "holidays"
    __table_args__ = (
        db.UniqueConstraint("realm_id", "user_id", "date", name="uq_holiday"),
    )

    id = db.Column(BigId, primary_key=True)
    realm_id = db.Column(BigId, db.ForeignKey("realms.id"), nullable=False)
    user_id = db.Column(BigId, db.ForeignKey("users.id"))
    date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    created_by = db.Column(BigId, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "realm_id": self.realm_id,
            "user_id": self.user_id,
            "date": _iso(self.date),
            "description": self.description,
        }
