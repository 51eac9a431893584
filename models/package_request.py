# models/package_request.py
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from models.base import Base, AuditMixin


class PackageRequest(Base, AuditMixin):
    __tablename__ = 'package_requests'

    # Primary key
    requestID = Column(Integer, primary_key=True, autoincrement=True)

    # Foreign keys
    userID = Column(Integer, ForeignKey('users.userID'), nullable=False, index=True)
    packageID = Column(Integer, ForeignKey('packages.packageID'), nullable=False)

    # pending -> approved | rejected | failed
    status = Column(String, nullable=False, default="pending", index=True)
    adminNotes = Column(Text, nullable=True)
    processedAt = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship('User', backref='package_requests')
    package = relationship('Package')

    def __repr__(self):
        return f"<PackageRequest(requestID={self.requestID}, user={self.userID}, status={self.status})>"
