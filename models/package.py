# models/package.py
from decimal import Decimal

from sqlalchemy import Column, Integer, String, DECIMAL
from models.base import Base, AuditMixin


class Package(Base, AuditMixin):
    __tablename__ = 'packages'

    packageID = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)

    amount = Column(DECIMAL(12, 2), nullable=False)
    directCommission = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0"))
    indirectCommission = Column(DECIMAL(12, 2), nullable=False, default=Decimal("0"))
    points = Column(Integer, nullable=False, default=0)

    status = Column(String, nullable=False, default="active")  # active, inactive
    validityDays = Column(Integer, nullable=True)  # NULL - значение по умолчанию из config

    @property
    def isActive(self) -> bool:
        return self.status == "active"

    def __repr__(self):
        return f"<Package(packageID={self.packageID}, name={self.name}, amount={self.amount})>"
