# models/rank.py
"""
Rank model - reference data for the rank ladder.
"""
from sqlalchemy import Column, Integer, String, Boolean, Text, JSON
from models.base import Base, AuditMixin


class Rank(Base, AuditMixin):
    __tablename__ = 'ranks'

    rankID = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String, unique=True, nullable=False)
    requiredPoints = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=0)  # Порядок при равных очках
    earnsIndirect = Column(Boolean, nullable=False, default=True)

    # Downline composition requirement, NULL for points-only tiers
    requirement = Column(JSON, nullable=True)
    # {
    #   "type": "downline",
    #   "options": [
    #     [{"rank": "Ambassador", "lines": 3}],
    #     [{"rank": "Diamond", "lines": 10}]
    #   ]
    # }

    details = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Rank(rankID={self.rankID}, title={self.title}, requiredPoints={self.requiredPoints})>"
