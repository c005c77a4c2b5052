# dailydues/models/__init__.py
from .user import User
from .realm import Realm, UserRealm
from .commitment import Commitment, UserCommitment, DailyLog, Holiday
from .challenge import Challenge, ChallengeMember, ChallengeVote

__all__ = [
    "User",
    "Realm",
    "UserRealm",
    "Commitment",
    "UserCommitment",
    "DailyLog",
    "Holiday",
    "Challenge",
    "ChallengeMember",
    "ChallengeVote",
]
