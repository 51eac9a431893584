# models/user.py
"""
User model - a member of the referral forest.
"""
import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy import Column, Integer, String, DECIMAL, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin

logger = logging.getLogger(__name__)


def normalizeUsername(username: Optional[str]) -> Optional[str]:
    """Lookup key for usernames: trimmed and lower-cased."""
    if username is None:
        return None
    key = username.strip().lower()
    return key or None


class User(Base, AuditMixin):
    __tablename__ = 'users'

    # Primary identification
    userID = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, nullable=False)
    usernameKey = Column(String, unique=True, nullable=False, index=True)
    fullname = Column(String, nullable=True)
    email = Column(String, nullable=True)

    # Referral edge. uplineID is the parent in the forest, referredBy keeps
    # the referral username exactly as it was entered at signup.
    uplineID = Column(Integer, ForeignKey('users.userID'), nullable=True, index=True)
    referredBy = Column(String, nullable=True)

    status = Column(String, default="active", nullable=False)  # active, blocked, deleted

    # MLM state, mutated only by the commission engine
    points = Column(Integer, default=0, nullable=False)
    balance = Column(DECIMAL(12, 2), default=Decimal("0"), nullable=False)
    totalEarnings = Column(DECIMAL(12, 2), default=Decimal("0"), nullable=False)
    rankID = Column(Integer, ForeignKey('ranks.rankID'), nullable=True, index=True)

    currentPackageID = Column(Integer, ForeignKey('packages.packageID'), nullable=True)
    packageExpiryDate = Column(DateTime(timezone=True), nullable=True)

    notes = Column(Text, nullable=True)

    # Relationships
    rank = relationship('Rank')
    currentPackage = relationship('Package')
    upline = relationship('User', remote_side=[userID], backref='referrals')

    @classmethod
    def findByUsername(cls, session, username: str) -> Optional["User"]:
        """Case-insensitive lookup by username."""
        key = normalizeUsername(username)
        if not key:
            return None
        return session.query(cls).filter_by(usernameKey=key).first()

    @classmethod
    def register(cls, session, username: str, referredBy: Optional[str] = None, **fields) -> "User":
        """
        Creates a new user and links it to its referrer.
        An unknown referral username is kept in referredBy, the user stays
        without upline and shows up as an orphan until relinked.
        """
        key = normalizeUsername(username)
        if not key:
            raise ValueError("Username must not be empty")

        if session.query(cls).filter_by(usernameKey=key).first():
            raise ValueError(f"Username {username} is already taken")

        user = cls(
            username=username.strip(),
            usernameKey=key,
            referredBy=referredBy.strip() if referredBy else None,
            points=0,
            balance=Decimal("0"),
            totalEarnings=Decimal("0"),
            **fields
        )

        if user.referredBy:
            referrer = cls.findByUsername(session, user.referredBy)
            if referrer:
                user.uplineID = referrer.userID
            else:
                logger.warning(f"Referrer {user.referredBy} not found for new user {username}")

        session.add(user)
        session.flush()
        return user

    @property
    def isActive(self) -> bool:
        return self.status == "active"

    def __repr__(self):
        return f"<User(userID={self.userID}, username={self.username}, points={self.points})>"
