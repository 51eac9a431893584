# mlm_system/exceptions.py
"""
Errors raised by the commission engine.
"""


class MLMError(Exception):
    """Base class for commission engine errors."""


class PreconditionError(MLMError):
    """Request, user or package is not in a state that allows the operation."""


class ApprovalTimeoutError(MLMError):
    """Approval ran past its time budget."""
