# mlm_system/services/points_service.py
"""
Points propagation service - package points for the buyer and the whole upline.
"""
from typing import List, Dict
from sqlalchemy.orm import Session
import logging

from models import User, Package, PackageRequest, Earnings
from mlm_system.config.ranks import EarningType

logger = logging.getLogger(__name__)


class PointsService:
    """Service for crediting package points."""

    def __init__(self, session: Session):
        self.session = session

    async def propagatePoints(
            self,
            buyer: User,
            ancestors: List[User],
            package: Package,
            request: PackageRequest
    ) -> List[Dict]:
        """
        Add package points to the buyer and every ancestor, nobody excluded.
        Returns one entry per credited user.
        """
        points = package.points or 0
        if points <= 0:
            logger.info(f"Package {package.packageID} carries no points, nothing to propagate")
            return []

        recipients = []
        for level, user in enumerate([buyer] + list(ancestors)):
            await self._addPoints(user, points, request, buyer, level)
            recipients.append({
                "userId": user.userID,
                "username": user.username,
                "points": points,
                "level": level,
                "totalPoints": user.points
            })

        logger.info(
            f"Propagated {points} points for request {request.requestID} "
            f"to {len(recipients)} users"
        )
        return recipients

    async def _addPoints(
            self,
            user: User,
            points: int,
            request: PackageRequest,
            buyer: User,
            level: int
    ):
        """Increment user's points and write the ledger row."""
        user.points = (user.points or 0) + points

        description = "Points from own package" if level == 0 else f"Points from level {level} downline package"
        Earnings.record(
            self.session,
            userID=user.userID,
            type=EarningType.POINTS.value,
            amount=points,
            packageRequestID=request.requestID,
            sourceUserID=buyer.userID,
            description=description
        )

        logger.debug(f"Updated points for user {user.userID}: +{points}, total={user.points}")
