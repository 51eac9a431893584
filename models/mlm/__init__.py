# models/mlm/__init__.py
"""
MLM-specific models for the rank promotion engine.
"""

from models.mlm.rank_history import RankHistory

__all__ = [
    'RankHistory',
]
