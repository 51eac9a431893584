# mlm_system/services/downline_service.py
"""
Downline qualifier - counts qualifying lines below a user.
"""
from typing import Callable, Dict, List, Optional, Set, Tuple
from sqlalchemy.orm import Session
import logging

import config
from models import User
from mlm_system.config.ranks import QualificationResult, RankTier
from mlm_system.services.rank_table import RankTable
from mlm_system.services.referral_service import ReferralService, UserRef
from mlm_system.utils.deadline import Deadline

logger = logging.getLogger(__name__)

Predicate = Callable[[User], bool]


class DownlineService:
    """
    Each direct referral of a user starts a separate line. A line qualifies
    when its root or anyone below it, within the depth bound, satisfies the
    predicate. Several qualifying members in one line count once.
    """

    def __init__(
            self,
            session: Session,
            rankTable: RankTable,
            maxDepth: Optional[int] = None,
            deadline: Optional[Deadline] = None
    ):
        self.session = session
        self.rankTable = rankTable
        self.maxDepth = config.MAX_DOWNLINE_DEPTH if maxDepth is None else maxDepth
        self.deadline = deadline or Deadline.unlimited()
        self.referrals = ReferralService(session)
        self._lineCache: Dict[Tuple[int, str], int] = {}

    def clearCache(self):
        """Forget memoized line counts, needed after any rank change."""
        self._lineCache.clear()

    async def countQualifyingLines(
            self,
            user: UserRef,
            predicate: Predicate,
            maxDepth: Optional[int] = None
    ) -> int:
        """Number of direct lines of user containing a member matching predicate."""
        root = self.referrals.findUser(user)
        if not root:
            return 0

        limit = self.maxDepth if maxDepth is None else maxDepth
        if limit < 1:
            return 0

        visited: Set[int] = {root.userID}
        directReferrals = self.session.query(User).filter(
            User.uplineID == root.userID
        ).order_by(User.userID).all()

        qualifying = 0
        for lineRoot in directReferrals:
            if lineRoot.userID in visited:
                continue
            if await self._lineQualifies(lineRoot, predicate, limit, visited):
                qualifying += 1
            if self.deadline.expired:
                logger.warning(
                    f"Downline scan of user {root.userID} stopped by time budget, "
                    f"{qualifying} lines counted"
                )
                break

        return qualifying

    async def _lineQualifies(
            self,
            lineRoot: User,
            predicate: Predicate,
            limit: int,
            visited: Set[int]
    ) -> bool:
        """Breadth-first scan of one line, one query per level."""
        visited.add(lineRoot.userID)
        frontier = [lineRoot]
        depth = 1

        while frontier:
            if any(predicate(member) for member in frontier):
                return True

            if depth >= limit:
                return False

            # Fail closed: an unfinished scan never qualifies a line
            if self.deadline.expired:
                return False

            children = self.session.query(User).filter(
                User.uplineID.in_([member.userID for member in frontier])
            ).all()

            frontier = []
            for child in children:
                if child.userID in visited:
                    logger.warning(f"Referral cycle detected in downline at user {child.userID}")
                    continue
                visited.add(child.userID)
                frontier.append(child)
            depth += 1

        return False

    async def countLinesWithRank(self, user: User, rankTitle: str) -> int:
        """Memoized count of lines holding rankTitle or higher."""
        key = (user.userID, rankTitle.lower())
        if key not in self._lineCache:
            self._lineCache[key] = await self.countQualifyingLines(
                user,
                self.rankTable.rankAtLeast(rankTitle)
            )
        return self._lineCache[key]

    async def meetsRequirement(self, user: User, tier: RankTier) -> QualificationResult:
        """Evaluate the downline part of a tier's requirement for user."""

        async def countLines(rankTitle: str) -> int:
            return await self.countLinesWithRank(user, rankTitle)

        result = await tier.requirement.evaluate(countLines)
        result.rank = tier.title
        return result

    async def getDownlineTree(self, user: UserRef, maxDepth: Optional[int] = None) -> Optional[Dict]:
        """Nested view of the downline for admin screens."""
        root = self.referrals.findUser(user)
        if not root:
            return None

        limit = self.maxDepth if maxDepth is None else maxDepth
        visited: Set[int] = set()

        def buildNode(member: User, depth: int) -> Dict:
            visited.add(member.userID)
            tier = self.rankTable.tierOf(member)
            node = {
                "userID": member.userID,
                "username": member.username,
                "rank": tier.title if tier else None,
                "points": member.points,
                "children": []
            }
            if depth >= limit:
                return node

            children: List[User] = self.session.query(User).filter(
                User.uplineID == member.userID
            ).order_by(User.userID).all()
            for child in children:
                if child.userID not in visited:
                    node["children"].append(buildNode(child, depth + 1))
            return node

        return buildNode(root, 0)
