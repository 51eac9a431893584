# mlm_system/__init__.py
"""
MLM System - commission distribution and rank promotion engine.
"""

# Services
from mlm_system.services.rank_table import RankTable, seedDefaultRanks
from mlm_system.services.referral_service import ReferralService
from mlm_system.services.downline_service import DownlineService
from mlm_system.services.commission_service import CommissionService
from mlm_system.services.points_service import PointsService
from mlm_system.services.rank_service import RankService
from mlm_system.services.approval_service import ApprovalService

# Models and configuration
from mlm_system.config.ranks import (
    RankTier, PointsRequirement, DownlineRequirement, LineCondition,
    QualificationResult, EarningType, RequestStatus, DEFAULT_RANKS
)

# Errors
from mlm_system.exceptions import MLMError, PreconditionError, ApprovalTimeoutError

# Utilities
from mlm_system.utils.time_machine import timeMachine
from mlm_system.utils.deadline import Deadline

# Events
from mlm_system.events.event_bus import eventBus, MLMEvents

__all__ = [
    # Services
    'RankTable',
    'seedDefaultRanks',
    'ReferralService',
    'DownlineService',
    'CommissionService',
    'PointsService',
    'RankService',
    'ApprovalService',

    # Config
    'RankTier',
    'PointsRequirement',
    'DownlineRequirement',
    'LineCondition',
    'QualificationResult',
    'EarningType',
    'RequestStatus',
    'DEFAULT_RANKS',

    # Errors
    'MLMError',
    'PreconditionError',
    'ApprovalTimeoutError',

    # Utils
    'timeMachine',
    'Deadline',

    # Events
    'eventBus',
    'MLMEvents',
]
