# models/earnings.py
"""
Earnings model - append-only ledger of commissions and points.
"""
from decimal import Decimal

from sqlalchemy import Column, Integer, String, DECIMAL, Text, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class Earnings(Base, AuditMixin):
    __tablename__ = 'earnings'

    # Primary key
    earningID = Column(Integer, primary_key=True, autoincrement=True)

    # Relations
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)  # Кто получает
    sourceUserID = Column(Integer, ForeignKey('users.userID'), nullable=True)  # Покупатель пакета
    packageRequestID = Column(Integer, ForeignKey('package_requests.requestID'), nullable=True, index=True)

    # direct_commission, indirect_commission, points
    type = Column(String, nullable=False, index=True)
    amount = Column(DECIMAL(12, 2), nullable=False)
    rankTier = Column(String, nullable=True)  # Tier that paid an indirect commission
    description = Column(Text, nullable=True)

    # Relationships
    user = relationship('User', foreign_keys=[userID], backref='earnings')
    sourceUser = relationship('User', foreign_keys=[sourceUserID])
    packageRequest = relationship('PackageRequest', backref='earnings')

    @classmethod
    def record(cls, session, userID: int, type: str, amount, packageRequestID: int = None,
               sourceUserID: int = None, rankTier: str = None, description: str = None) -> "Earnings":
        """Appends one ledger row. Rows are never updated afterwards."""
        row = cls(
            userID=userID,
            type=type,
            amount=Decimal(str(amount)),
            packageRequestID=packageRequestID,
            sourceUserID=sourceUserID,
            rankTier=rankTier,
            description=description
        )
        session.add(row)
        return row

    def __repr__(self):
        return f"<Earnings(earningID={self.earningID}, user={self.userID}, type={self.type}, amount={self.amount})>"
