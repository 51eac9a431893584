"""
Base model and mixins for all database tables.
"""
from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, DateTime
from datetime import datetime

Base = declarative_base()


def utcnow() -> datetime:
    """Engine clock, so audit times follow a frozen time machine."""
    # Imported here: mlm_system imports the models
    from mlm_system.utils.time_machine import timeMachine
    return timeMachine.now


class AuditMixin:
    createdAt = Column(DateTime(timezone=True), default=utcnow)
    updatedAt = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
