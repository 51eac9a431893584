# models/__init__.py
"""
Database models for the commission engine.
Import all models here for easy access.
"""

# Base and mixins
from models.base import Base, AuditMixin

# Core models
from models.rank import Rank
from models.package import Package
from models.user import User, normalizeUsername
from models.package_request import PackageRequest
from models.earnings import Earnings

# MLM models
from models.mlm.rank_history import RankHistory

__all__ = [
    # Base
    'Base',
    'AuditMixin',

    # Core
    'Rank',
    'Package',
    'User',
    'normalizeUsername',
    'PackageRequest',
    'Earnings',

    # MLM
    'RankHistory',
]
