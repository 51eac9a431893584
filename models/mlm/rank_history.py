# models/mlm/rank_history.py
"""
RankHistory model - tracks rank changes.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, utcnow


class RankHistory(Base):
    __tablename__ = 'rank_history'

    historyID = Column(Integer, primary_key=True, autoincrement=True)
    createdAt = Column(DateTime(timezone=True), default=utcnow)

    # Relations
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    packageRequestID = Column(Integer, ForeignKey('package_requests.requestID'), nullable=True)

    # Rank details
    previousRank = Column(String, nullable=True)
    newRank = Column(String, nullable=False)

    # Qualification metrics at time of change
    points = Column(Integer, nullable=True)
    qualificationMethod = Column(String, nullable=True)  # natural, recalculation

    # Additional context
    notes = Column(Text, nullable=True)

    # Relationships
    user = relationship('User', backref='rank_history')

    def __repr__(self):
        return f"<RankHistory(user={self.userID}, rank={self.newRank}, date={self.createdAt})>"
