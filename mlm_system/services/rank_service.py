# mlm_system/services/rank_service.py
"""
Rank management service for MLM system.
"""
from typing import Optional, Dict, List, Tuple, Any
from sqlalchemy.orm import Session
import logging

from models import User, RankHistory
from mlm_system.config.ranks import QualificationResult, RankTier
from mlm_system.services.rank_table import RankTable
from mlm_system.services.downline_service import DownlineService
from mlm_system.services.referral_service import ReferralService, UserRef
from mlm_system.events.event_bus import EventBus, MLMEvents, eventBus

logger = logging.getLogger(__name__)


class RankService:
    """Service for recomputing user ranks."""

    def __init__(
            self,
            session: Session,
            rankTable: RankTable,
            downline: Optional[DownlineService] = None
    ):
        self.session = session
        self.rankTable = rankTable
        self.downline = downline or DownlineService(session, rankTable)
        self.referrals = ReferralService(session)
        # rank.changed events waiting for the transaction to commit
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def getHighestQualifyingRank(self, user: UserRef) -> QualificationResult:
        """
        Highest tier the user qualifies for, checked from the top down.
        Falls back to the lowest tier.
        """
        target = self.referrals.findUser(user)
        if not target:
            return QualificationResult(qualifies=False, reason="User not found")

        points = target.points or 0

        for tier in self.rankTable.descending():
            if points < tier.requiredPoints:
                continue

            if tier.requiresDownline:
                result = await self.downline.meetsRequirement(target, tier)
                if not result.qualifies:
                    logger.debug(f"User {target.userID} not qualified for {tier.title}: {result.reason}")
                    continue
                result.details.update({"points": points, "requiredPoints": tier.requiredPoints})
                return result

            return QualificationResult(
                qualifies=True,
                reason=f"Meets {tier.title} requirements ({points}/{tier.requiredPoints} points)",
                rank=tier.title,
                details={"points": points, "requiredPoints": tier.requiredPoints}
            )

        lowest = self.rankTable.lowest
        return QualificationResult(
            qualifies=True,
            reason="Default rank - no other qualifications met",
            rank=lowest.title,
            details={"points": points, "requiredPoints": lowest.requiredPoints}
        )

    async def recomputeRank(
            self,
            user: UserRef,
            packageRequestID: Optional[int] = None,
            method: str = "natural"
    ) -> Optional[str]:
        """
        Recompute and persist the user's rank.
        Returns the new rank title if it changed, None otherwise.
        """
        target = self.referrals.findUser(user)
        if not target:
            logger.warning(f"Cannot recompute rank: user {user} not found")
            return None

        result = await self.getHighestQualifyingRank(target)
        newTier = self.rankTable.byTitle(result.rank)

        if target.rankID == newTier.rankID:
            return None

        await self._recordRankChange(target, newTier, result, method, packageRequestID)
        # Counts cached for the upline may include this user
        self.downline.clearCache()
        return newTier.title

    async def _recordRankChange(
            self,
            user: User,
            newTier: RankTier,
            result: QualificationResult,
            method: str,
            packageRequestID: Optional[int]
    ):
        """Update user's rank and record in history."""
        oldTier = self.rankTable.byID(user.rankID)
        oldTitle = oldTier.title if oldTier else None

        user.rankID = newTier.rankID

        history = RankHistory(
            userID=user.userID,
            packageRequestID=packageRequestID,
            previousRank=oldTitle,
            newRank=newTier.title,
            points=user.points,
            qualificationMethod=method,
            notes=result.reason
        )
        self.session.add(history)

        self.events.append((MLMEvents.RANK_CHANGED, {
            "userId": user.userID,
            "username": user.username,
            "previousRank": oldTitle,
            "newRank": newTier.title,
            "packageRequestId": packageRequestID
        }))

        logger.info(f"User {user.userID} rank updated: {oldTitle} -> {newTier.title} ({method})")

    def _depthOrder(self) -> List[int]:
        """All user ids, deepest in the forest first."""
        parents = dict(self.session.query(User.userID, User.uplineID).all())
        depths: Dict[int, int] = {}

        for userId in parents:
            path = []
            current = userId
            while current in parents and current not in depths and current not in path:
                path.append(current)
                current = parents[current]
            base = depths.get(current, -1)
            for offset, node in enumerate(reversed(path)):
                depths[node] = base + offset + 1

        return sorted(depths, key=lambda uid: (-depths[uid], uid))

    async def recalculateAllRanks(self, bus: EventBus = eventBus) -> Dict[str, int]:
        """
        Check and update ranks for all users, bottom of the tree first so that
        downline requirements see already updated descendants. Commits.
        """
        results = {
            "checked": 0,
            "updated": 0,
            "errors": 0
        }

        for userId in self._depthOrder():
            try:
                results["checked"] += 1
                if await self.recomputeRank(userId, method="recalculation"):
                    results["updated"] += 1
            except Exception as e:
                logger.error(f"Error checking rank for user {userId}: {e}")
                results["errors"] += 1

        self.session.commit()

        events, self.events = self.events, []
        await bus.emitAll(events)

        logger.info(
            f"Rank check complete: checked={results['checked']}, "
            f"updated={results['updated']}, errors={results['errors']}"
        )

        return results
