# mlm_system/services/approval_service.py
"""
Package request approval - runs the whole commission engine in one
database transaction.
"""
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import text, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
import logging

import config
from init import SQLITE_IMMEDIATE
from models import User, Package, PackageRequest
from mlm_system.config.ranks import RequestStatus
from mlm_system.exceptions import PreconditionError, ApprovalTimeoutError
from mlm_system.events.event_bus import EventBus, MLMEvents, eventBus
from mlm_system.services.rank_table import RankTable
from mlm_system.services.referral_service import ReferralService
from mlm_system.services.downline_service import DownlineService
from mlm_system.services.points_service import PointsService
from mlm_system.services.commission_service import CommissionService, toMoney
from mlm_system.services.rank_service import RankService
from mlm_system.utils.deadline import Deadline
from mlm_system.utils.time_machine import timeMachine

logger = logging.getLogger(__name__)

Event = Tuple[str, Dict[str, Any]]


class ApprovalService:
    """
    Entry point for admin decisions on package requests.
    Owns its transactions: every call opens a session from sessionFactory.
    """

    def __init__(
            self,
            sessionFactory: sessionmaker,
            bus: EventBus = eventBus,
            timeoutSeconds: Optional[float] = None,
            maxRetries: Optional[int] = None
    ):
        self.sessionFactory = sessionFactory
        self.bus = bus
        self.timeoutSeconds = config.APPROVAL_TIMEOUT_SECONDS if timeoutSeconds is None else timeoutSeconds
        self.maxRetries = max(1, config.APPROVAL_MAX_RETRIES if maxRetries is None else maxRetries)

    @staticmethod
    def _failure(requestId: Optional[int], message: str) -> Dict:
        return {
            "success": False,
            "message": message,
            "requestId": requestId,
            "user": None,
            "package": None,
            "packageAmount": None
        }

    async def submitPackageRequest(self, userId: int, packageId: int) -> Dict:
        """Create a pending request for user to buy package."""
        with self.sessionFactory() as session:
            user = session.query(User).filter_by(userID=userId).first()
            if not user or not user.isActive:
                return self._failure(None, "User not found or not active")

            package = session.query(Package).filter_by(packageID=packageId).first()
            if not package or not package.isActive:
                return self._failure(None, "Package not found or not active")

            request = PackageRequest(
                userID=user.userID,
                packageID=package.packageID,
                status=RequestStatus.PENDING.value
            )
            session.add(request)
            session.commit()

            logger.info(f"Package request {request.requestID} submitted by {user.username} for {package.name}")
            return {
                "success": True,
                "message": "Package request submitted",
                "requestId": request.requestID,
                "user": user.username,
                "package": package.name,
                "packageAmount": toMoney(package.amount)
            }

    async def approvePackageRequest(self, requestId: int) -> Dict:
        """
        Approve a pending request and distribute commissions, points and
        ranks atomically. On any failure nothing is written and the request
        stays pending.
        """
        attempt = 0
        while True:
            attempt += 1
            deadline = Deadline(self.timeoutSeconds)
            session = self.sessionFactory()
            try:
                with session.begin():
                    self._openTransaction(session)
                    result, events = await self._approve(session, requestId, deadline)
            except PreconditionError as e:
                logger.warning(f"Package request {requestId} not approved: {e}")
                return self._failure(requestId, str(e))
            except ApprovalTimeoutError as e:
                logger.error(f"Package request {requestId} rolled back: {e}")
                return self._failure(requestId, str(e))
            except OperationalError as e:
                if attempt < self.maxRetries:
                    logger.warning(
                        f"Transient database error approving request {requestId} "
                        f"(attempt {attempt}/{self.maxRetries}), retrying: {e}"
                    )
                    continue
                logger.error(f"Package request {requestId} failed after {attempt} attempts: {e}")
                return self._failure(requestId, f"Database error: {e}")
            except Exception as e:
                logger.error(f"Package approval {requestId} failed: {e}", exc_info=True)
                return self._failure(requestId, f"Package approval failed: {e}")
            finally:
                session.close()

            await self.bus.emitAll(events)
            logger.info(f"Package request {requestId} approved successfully")
            return result

    def _openTransaction(self, session: Session):
        """
        Start the transaction before the first read: write-locked on SQLite,
        every statement bounded by the time budget on PostgreSQL.
        """
        session.connection(execution_options={SQLITE_IMMEDIATE: True})
        if session.get_bind().dialect.name == "postgresql":
            milliseconds = int(self.timeoutSeconds * 1000)
            session.execute(text(f"SET LOCAL statement_timeout = {milliseconds}"))

    @staticmethod
    def _closeRequest(session: Session, request: PackageRequest, status: str, adminNotes: Optional[str] = None):
        """Move the request out of pending, only if nobody else already did."""
        values = {"status": status, "processedAt": timeMachine.now}
        if adminNotes is not None:
            values["adminNotes"] = adminNotes

        closed = session.execute(
            update(PackageRequest).where(
                PackageRequest.requestID == request.requestID,
                PackageRequest.status == RequestStatus.PENDING.value
            ).values(**values).execution_options(synchronize_session=False)
        )
        if closed.rowcount != 1:
            raise PreconditionError("Package request is not pending (processed concurrently)")

    async def _lockRequest(self, session: Session, requestId: int) -> PackageRequest:
        request = session.query(PackageRequest).filter_by(
            requestID=requestId
        ).with_for_update().populate_existing().first()

        if not request:
            raise PreconditionError("Package request not found")
        if request.status != RequestStatus.PENDING.value:
            raise PreconditionError(f"Package request is not pending (status: {request.status})")
        return request

    async def _approve(
            self,
            session: Session,
            requestId: int,
            deadline: Deadline
    ) -> Tuple[Dict, List[Event]]:
        referrals = ReferralService(session)

        # Preconditions, checked before any write
        request = await self._lockRequest(session, requestId)

        buyer = referrals.findUser(request.userID, forUpdate=True)
        if not buyer:
            raise PreconditionError("User not found")
        if not buyer.isActive:
            raise PreconditionError(f"User {buyer.username} is not active (status: {buyer.status})")

        package = session.query(Package).filter_by(packageID=request.packageID).first()
        if not package:
            raise PreconditionError("Package not found")
        if not package.isActive:
            raise PreconditionError(f"Package {package.name} is not active (status: {package.status})")

        logger.info(f"Approving package {package.name} for user {buyer.username} (request {requestId})")

        rankTable = RankTable.load(session)
        downline = DownlineService(session, rankTable, deadline=deadline)

        # 1. Assign package to buyer
        buyer.currentPackageID = package.packageID
        buyer.packageExpiryDate = timeMachine.expiryAfter(
            package.validityDays or config.DEFAULT_PACKAGE_VALIDITY_DAYS
        )

        # 2. Upline, locked for the rest of the transaction
        ancestors = await referrals.walkAncestors(buyer, forUpdate=True)
        deadline.check("upline walk")

        # 3. Points for buyer and every ancestor
        pointsRecipients = await PointsService(session).propagatePoints(buyer, ancestors, package, request)
        deadline.check("points propagation")

        # 4. Direct and indirect commissions
        commissionService = CommissionService(session, rankTable, downline)
        commissions = await commissionService.distribute(request, buyer, package, ancestors)
        deadline.check("commission distribution")

        # 5. Ranks, nearest first so uplines see promoted descendants
        rankService = RankService(session, rankTable, downline)
        rankChanges = []
        for user in [buyer] + ancestors:
            newRank = await rankService.recomputeRank(user, packageRequestID=request.requestID)
            if newRank:
                rankChanges.append({"userId": user.userID, "username": user.username, "rank": newRank})
            deadline.check("rank update")

        # 6. Close the request
        self._closeRequest(session, request, RequestStatus.APPROVED.value)

        result = {
            "success": True,
            "message": "Package approved successfully",
            "requestId": request.requestID,
            "user": buyer.username,
            "package": package.name,
            "packageAmount": toMoney(package.amount),
            "commissions": commissions["commissions"],
            "totalDistributed": commissions["totalDistributed"],
            "forfeited": commissions["forfeited"],
            "pointsRecipients": pointsRecipients,
            "rankChanges": rankChanges
        }

        events: List[Event] = [(MLMEvents.PACKAGE_APPROVED, {
            "requestId": request.requestID,
            "userId": buyer.userID,
            "packageId": package.packageID
        })]
        for commission in commissions["commissions"]:
            events.append((MLMEvents.COMMISSION_PAID, dict(commission, requestId=request.requestID)))
        for recipient in pointsRecipients:
            events.append((MLMEvents.POINTS_ADDED, dict(recipient, requestId=request.requestID)))
        if commissions["forfeited"] > 0:
            events.append((MLMEvents.COMMISSION_FORFEITED, {
                "requestId": request.requestID,
                "amount": commissions["forfeited"]
            }))
        events.extend(rankService.events)

        return result, events

    async def rejectPackageRequest(
            self,
            requestId: int,
            adminNotes: Optional[str] = None,
            status: str = RequestStatus.REJECTED.value
    ) -> Dict:
        """Close a pending request without any side effects."""
        if status not in (RequestStatus.REJECTED.value, RequestStatus.FAILED.value):
            return self._failure(requestId, f"Unsupported status for rejection: {status}")

        try:
            with self.sessionFactory() as session, session.begin():
                self._openTransaction(session)
                request = await self._lockRequest(session, requestId)
                self._closeRequest(session, request, status, adminNotes)
                userId = request.userID
        except PreconditionError as e:
            logger.warning(f"Package request {requestId} not rejected: {e}")
            return self._failure(requestId, str(e))

        await self.bus.emit(MLMEvents.PACKAGE_REJECTED, {
            "requestId": requestId,
            "userId": userId,
            "status": status
        })
        logger.info(f"Package request {requestId} marked {status}")
        return {
            "success": True,
            "message": f"Package request {status}",
            "requestId": requestId,
            "user": None,
            "package": None,
            "packageAmount": None
        }
