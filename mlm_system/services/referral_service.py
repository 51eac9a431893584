# mlm_system/services/referral_service.py
"""
Referral chain walker - the single place that follows upline links.
"""
from typing import Dict, List, Optional, Union
from sqlalchemy.orm import Session, aliased
import logging

import config
from models import User

logger = logging.getLogger(__name__)

UserRef = Union[User, int, str]


class ReferralService:
    """Service for walking and repairing the upline structure."""

    def __init__(self, session: Session):
        self.session = session

    def findUser(self, ref: UserRef, forUpdate: bool = False) -> Optional[User]:
        """Resolve a User instance, user id or username (case-insensitive)."""
        if isinstance(ref, User):
            if not forUpdate:
                return ref
            ref = ref.userID

        if isinstance(ref, str):
            return User.findByUsername(self.session, ref)

        query = self.session.query(User).filter_by(userID=ref)
        if forUpdate:
            query = query.with_for_update().populate_existing()
        return query.first()

    async def walkAncestors(
            self,
            user: UserRef,
            maxDepth: Optional[int] = None,
            forUpdate: bool = False
    ) -> List[User]:
        """
        Upline of user, nearest first, starting at its referrer.
        Stops at the root, at maxDepth, at a referrer that does not exist
        or at a user already seen in this walk.
        """
        start = self.findUser(user)
        if not start:
            logger.warning(f"Cannot walk upline: user {user} not found")
            return []

        limit = config.MAX_CHAIN_DEPTH if maxDepth is None else maxDepth
        visited = {start.userID}
        ancestors: List[User] = []
        parentId = start.uplineID

        while parentId is not None and len(ancestors) < limit:
            if parentId in visited:
                logger.warning(
                    f"Referral cycle detected above user {start.userID} at user {parentId}, "
                    f"walk stopped after {len(ancestors)} levels"
                )
                break

            parent = self.findUser(parentId, forUpdate=forUpdate)
            if not parent:
                logger.warning(
                    f"Broken referral link: user {parentId} referenced above user {start.userID} "
                    f"does not exist, walk truncated at level {len(ancestors)}"
                )
                break

            visited.add(parent.userID)
            ancestors.append(parent)
            parentId = parent.uplineID

        return ancestors

    async def getDirectReferrals(self, user: UserRef) -> List[User]:
        """Users directly referred by user."""
        target = self.findUser(user)
        if not target:
            return []
        return self.session.query(User).filter(
            User.uplineID == target.userID
        ).order_by(User.userID).all()

    async def findOrphans(self) -> List[User]:
        """Users with a referral username but no existing upline."""
        upline = aliased(User)
        return self.session.query(User).outerjoin(
            upline, User.uplineID == upline.userID
        ).filter(
            User.referredBy.isnot(None),
            upline.userID.is_(None)
        ).order_by(User.userID).all()

    async def relinkOrphans(self, dryRun: bool = False) -> Dict[str, List[str]]:
        """
        Resolve orphan referral usernames case-insensitively and attach the
        orphans to their referrer. Links that would close a cycle are skipped.
        Does not commit.
        """
        results = {
            "linked": [],
            "unresolved": [],
            "skipped": []
        }

        userCount = self.session.query(User).count()

        for orphan in await self.findOrphans():
            referrer = User.findByUsername(self.session, orphan.referredBy)

            if not referrer:
                results["unresolved"].append(orphan.username)
                continue

            if referrer.userID == orphan.userID:
                results["skipped"].append(orphan.username)
                logger.warning(f"User {orphan.username} refers to itself, not linked")
                continue

            # Whole upline: no chain is longer than the user count
            referrerUpline = await self.walkAncestors(referrer, maxDepth=userCount)
            if any(u.userID == orphan.userID for u in referrerUpline):
                results["skipped"].append(orphan.username)
                logger.warning(
                    f"Linking {orphan.username} under {referrer.username} would create a cycle, skipped"
                )
                continue

            if not dryRun:
                orphan.uplineID = referrer.userID
            results["linked"].append(orphan.username)
            logger.info(f"Orphan {orphan.username} linked to {referrer.username} (dryRun={dryRun})")

        if not dryRun:
            self.session.flush()

        return results
