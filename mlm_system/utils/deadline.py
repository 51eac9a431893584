# mlm_system/utils/deadline.py
"""
Time budget for a single package approval.
"""
import time
from typing import Optional

from mlm_system.exceptions import ApprovalTimeoutError


class Deadline:
    """Monotonic time budget. A budget of None never expires."""

    def __init__(self, seconds: Optional[float]):
        self.seconds = seconds
        self._expiresAt = time.monotonic() + seconds if seconds is not None else None

    @property
    def expired(self) -> bool:
        return self._expiresAt is not None and time.monotonic() >= self._expiresAt

    @property
    def remaining(self) -> Optional[float]:
        if self._expiresAt is None:
            return None
        return max(0.0, self._expiresAt - time.monotonic())

    def check(self, stage: str):
        """Raise ApprovalTimeoutError if the budget is spent."""
        if self.expired:
            raise ApprovalTimeoutError(f"Approval exceeded {self.seconds}s budget during {stage}")

    @classmethod
    def unlimited(cls) -> "Deadline":
        return cls(None)
