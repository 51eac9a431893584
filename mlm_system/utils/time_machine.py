# mlm_system/utils/time_machine.py
"""
Time machine - the clock seen by the commission engine.
Package expiry dates and request processing times are taken from here, so
scripts and tests can replay approvals at a fixed moment.
"""
from contextlib import contextmanager
from datetime import datetime, timezone, timedelta
from typing import Iterator, Optional
import logging

logger = logging.getLogger(__name__)


def _asUTC(moment: datetime) -> datetime:
    # Naive datetimes are taken to be UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class TimeMachine:
    """Process-wide clock, real by default, frozen on request."""

    _instance = None
    _frozenAt: Optional[datetime] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def isFrozen(self) -> bool:
        return self._frozenAt is not None

    @property
    def now(self) -> datetime:
        """Current engine time, always timezone aware."""
        if self._frozenAt is not None:
            return self._frozenAt
        return datetime.now(timezone.utc)

    def expiryAfter(self, days: int) -> datetime:
        """Moment a package bought now stops being valid."""
        return self.now + timedelta(days=days)

    def setTime(self, newTime: datetime):
        """Freeze the clock at newTime."""
        self._frozenAt = _asUTC(newTime)
        logger.info(f"Clock frozen at {self._frozenAt}")

    def advanceTime(self, days: int = 0, hours: int = 0, seconds: int = 0):
        """Move a frozen clock forward."""
        if self._frozenAt is None:
            raise ValueError("Clock is not frozen, nothing to advance")

        self._frozenAt += timedelta(days=days, hours=hours, seconds=seconds)
        logger.info(f"Clock advanced to {self._frozenAt}")

    def resetToRealTime(self):
        """Unfreeze the clock."""
        if self._frozenAt is not None:
            logger.info("Clock back to real time")
        self._frozenAt = None

    @contextmanager
    def frozen(self, moment: datetime) -> Iterator["TimeMachine"]:
        """Freeze the clock for the duration of a block."""
        previous = self._frozenAt
        self.setTime(moment)
        try:
            yield self
        finally:
            self._frozenAt = previous


# Global instance
timeMachine = TimeMachine()
