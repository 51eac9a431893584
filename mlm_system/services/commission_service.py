# mlm_system/services/commission_service.py
"""
Commission distribution service - direct and indirect commissions for an
approved package request.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Dict, Optional
from sqlalchemy.orm import Session
import logging

import config
from models import User, Package, PackageRequest, Earnings
from mlm_system.config.ranks import EarningType, RankTier
from mlm_system.services.rank_table import RankTable
from mlm_system.services.downline_service import DownlineService

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def toMoney(value) -> Decimal:
    """Decimal rounded to cents; None counts as zero."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class CommissionService:
    """Service for paying MLM commissions."""

    def __init__(
            self,
            session: Session,
            rankTable: RankTable,
            downline: DownlineService,
            floorRank: Optional[str] = None
    ):
        self.session = session
        self.rankTable = rankTable
        self.downline = downline
        self.floorRank = floorRank or config.INDIRECT_FLOOR_RANK

    async def distribute(
            self,
            request: PackageRequest,
            buyer: User,
            package: Package,
            ancestors: List[User]
    ) -> Dict:
        """
        Pay all commissions for an approved request.
        ancestors is the buyer's upline, nearest first.
        """
        results = {
            "commissions": [],
            "totalDistributed": Decimal("0.00"),
            "forfeited": Decimal("0.00")
        }

        # 1. Direct commission to the immediate referrer
        direct = await self.payDirectCommission(request, buyer, package, ancestors)
        if direct:
            results["commissions"].append(direct)
            results["totalDistributed"] += direct["amount"]

        # 2. Indirect commissions up the rank ladder
        indirect = await self.payIndirectCommissions(request, buyer, package, ancestors)
        for commission in indirect["commissions"]:
            results["commissions"].append(commission)
            results["totalDistributed"] += commission["amount"]
        results["forfeited"] = indirect["forfeited"]

        logger.info(
            f"Processed request {request.requestID}: "
            f"{len(results['commissions'])} commissions, "
            f"total {results['totalDistributed']}, forfeited {results['forfeited']}"
        )

        return results

    @staticmethod
    def _directReferrer(buyer: User, ancestors: List[User]) -> Optional[User]:
        if buyer.uplineID is None or not ancestors:
            return None
        referrer = ancestors[0]
        return referrer if referrer.userID == buyer.uplineID else None

    async def payDirectCommission(
            self,
            request: PackageRequest,
            buyer: User,
            package: Package,
            ancestors: List[User]
    ) -> Optional[Dict]:
        """Direct commission for the buyer's referrer, if there is one."""
        if buyer.uplineID is None:
            logger.info(f"User {buyer.username} has no referrer, no direct commission")
            return None

        referrer = self._directReferrer(buyer, ancestors)
        if not referrer:
            logger.warning(f"Direct referrer {buyer.uplineID} of {buyer.username} not found")
            return None

        amount = toMoney(package.directCommission)
        if amount <= 0:
            return None

        return await self._saveCommission(
            recipient=referrer,
            amount=amount,
            earningType=EarningType.DIRECT_COMMISSION,
            request=request,
            buyer=buyer,
            level=1,
            description=f"Direct commission from {buyer.username}"
        )

    async def payIndirectCommissions(
            self,
            request: PackageRequest,
            buyer: User,
            package: Package,
            ancestors: List[User]
    ) -> Dict:
        """
        Walk the indirect tiers upward from the floor rank. The nearest
        eligible holder of a tier takes the tier amount plus whatever lower
        tiers could not pay out; what is left after the top tier is forfeited.
        """
        results = {"commissions": [], "forfeited": Decimal("0.00")}

        perTier = toMoney(package.indirectCommission)
        if perTier <= 0:
            return results

        # The direct referrer never takes part in the indirect distribution
        chain = ancestors[1:] if self._directReferrer(buyer, ancestors) else []
        accumulated = Decimal("0.00")

        for tier in self.rankTable.indirectTiers(self.floorRank):
            recipient = await self._findTierRecipient(chain, tier)

            if recipient is None:
                accumulated += perTier
                logger.debug(f"No eligible {tier.title} above {buyer.username}, carrying {accumulated}")
                continue

            commission = await self._saveCommission(
                recipient=recipient,
                amount=perTier + accumulated,
                earningType=EarningType.INDIRECT_COMMISSION,
                request=request,
                buyer=buyer,
                level=self._levelOf(recipient, ancestors),
                tier=tier,
                carried=accumulated,
                description=(
                    f"Indirect commission ({tier.title}) from {buyer.username}"
                    + (f", includes {accumulated} carried from lower ranks" if accumulated > 0 else "")
                )
            )
            results["commissions"].append(commission)
            accumulated = Decimal("0.00")

        if accumulated > 0:
            logger.info(
                f"Indirect commission {accumulated} for request {request.requestID} "
                f"forfeited: no eligible upline at the top ranks"
            )
        results["forfeited"] = accumulated

        return results

    async def _findTierRecipient(self, chain: List[User], tier: RankTier) -> Optional[User]:
        """First chain member holding exactly tier and meeting its downline requirement."""
        for member in chain:
            if member.rankID != tier.rankID:
                continue

            if tier.requiresDownline:
                qualification = await self.downline.meetsRequirement(member, tier)
                if not qualification.qualifies:
                    logger.info(
                        f"User {member.username} holds {tier.title} but is skipped: "
                        f"{qualification.reason}"
                    )
                    continue

            return member

        return None

    @staticmethod
    def _levelOf(user: User, ancestors: List[User]) -> int:
        for index, ancestor in enumerate(ancestors):
            if ancestor.userID == user.userID:
                return index + 1
        return 0

    async def _saveCommission(
            self,
            recipient: User,
            amount: Decimal,
            earningType: EarningType,
            request: PackageRequest,
            buyer: User,
            level: int,
            description: str,
            tier: Optional[RankTier] = None,
            carried: Decimal = Decimal("0.00")
    ) -> Dict:
        """Write the ledger row and credit the recipient."""
        Earnings.record(
            self.session,
            userID=recipient.userID,
            type=earningType.value,
            amount=amount,
            packageRequestID=request.requestID,
            sourceUserID=buyer.userID,
            rankTier=tier.title if tier else None,
            description=description
        )

        recipient.balance = toMoney(recipient.balance) + amount
        recipient.totalEarnings = toMoney(recipient.totalEarnings) + amount

        logger.info(
            f"{earningType.value} {amount} to {recipient.username} "
            f"(level {level}{', ' + tier.title if tier else ''})"
        )

        return {
            "userId": recipient.userID,
            "username": recipient.username,
            "type": earningType.value,
            "amount": amount,
            "level": level,
            "rank": tier.title if tier else None,
            "carried": carried
        }
