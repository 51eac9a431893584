# mlm_system/services/rank_table.py
"""
Rank table - ordered, read-only snapshot of the rank ladder.
"""
from typing import Callable, Dict, List, Optional, Union
from sqlalchemy.orm import Session
import logging

from models import Rank, User
from mlm_system.config.ranks import RankTier, DEFAULT_RANKS, parseRequirement

logger = logging.getLogger(__name__)


class RankTable:
    """
    Rank tiers sorted ascending by (requiredPoints, level).
    Loaded fresh for every approval and never modified afterwards.
    """

    def __init__(self, tiers: List[RankTier]):
        if not tiers:
            raise ValueError("Rank table is empty, seed ranks first")

        self._tiers = sorted(tiers, key=lambda t: (t.requiredPoints, t.level, t.rankID))
        self._byID = {tier.rankID: tier for tier in self._tiers}
        self._byTitle = {tier.title.lower(): tier for tier in self._tiers}
        self._position = {tier.rankID: index for index, tier in enumerate(self._tiers)}

    @classmethod
    def load(cls, session: Session) -> "RankTable":
        ranks = session.query(Rank).all()
        tiers = [
            RankTier(
                rankID=rank.rankID,
                title=rank.title,
                requiredPoints=rank.requiredPoints or 0,
                level=rank.level or 0,
                earnsIndirect=bool(rank.earnsIndirect),
                requirement=parseRequirement(rank.requirement)
            )
            for rank in ranks
        ]
        return cls(tiers)

    def __len__(self):
        return len(self._tiers)

    def __iter__(self):
        return iter(self._tiers)

    def ascending(self) -> List[RankTier]:
        return list(self._tiers)

    def descending(self) -> List[RankTier]:
        return list(reversed(self._tiers))

    @property
    def lowest(self) -> RankTier:
        return self._tiers[0]

    def byTitle(self, title: str) -> Optional[RankTier]:
        return self._byTitle.get(title.lower()) if title else None

    def byID(self, rankID: Optional[int]) -> Optional[RankTier]:
        return self._byID.get(rankID)

    def tierOf(self, user: User) -> Optional[RankTier]:
        return self.byID(user.rankID)

    def levelOf(self, rank: Union[RankTier, int, str, None]) -> int:
        """Position on the ladder, -1 for unknown or missing ranks."""
        if isinstance(rank, RankTier):
            tier = rank
        elif isinstance(rank, str):
            tier = self.byTitle(rank)
        else:
            tier = self.byID(rank)
        if tier is None:
            return -1
        return self._position[tier.rankID]

    def indirectTiers(self, floorTitle: str) -> List[RankTier]:
        """Tiers eligible for indirect commission, ascending from floorTitle."""
        floor = self.byTitle(floorTitle)
        if floor is None:
            raise ValueError(f"Indirect commission floor rank {floorTitle} is not in the rank table")

        floorLevel = self.levelOf(floor)
        return [
            tier for tier in self._tiers
            if self.levelOf(tier) >= floorLevel and tier.earnsIndirect
        ]

    def rankAtLeast(self, title: str) -> Callable[[User], bool]:
        """Predicate: user currently holds title or any rank above it."""
        target = self.byTitle(title)
        if target is None:
            raise ValueError(f"Unknown rank {title}")
        targetLevel = self.levelOf(target)

        def predicate(user: User) -> bool:
            return self.levelOf(user.rankID) >= targetLevel

        predicate.__name__ = f"rankAtLeast_{target.title.replace(' ', '_')}"
        return predicate


def seedDefaultRanks(session: Session, ranks: List[Dict] = None) -> Dict[str, int]:
    """
    Insert or update rank rows by title. Safe to run repeatedly.
    Does not commit.
    """
    results = {"created": 0, "updated": 0}

    for level, data in enumerate(ranks or DEFAULT_RANKS):
        rank = session.query(Rank).filter_by(title=data["title"]).first()
        if rank is None:
            rank = Rank(title=data["title"])
            session.add(rank)
            results["created"] += 1
        else:
            results["updated"] += 1

        rank.requiredPoints = data["requiredPoints"]
        rank.level = level
        rank.earnsIndirect = data.get("earnsIndirect", True)
        rank.requirement = data.get("requirement")
        rank.details = data.get("details")

    session.flush()
    logger.info(f"Ranks seeded: created={results['created']}, updated={results['updated']}")
    return results
