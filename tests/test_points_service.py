"""Tests for package points propagation."""

from decimal import Decimal

import pytest

from models import Earnings
from mlm_system.services.points_service import PointsService
from mlm_system.services.referral_service import ReferralService


class TestPropagatePoints:

    @pytest.mark.asyncio
    async def test_buyer_and_every_ancestor(self, session, factory):
        users = factory.chain("u0", "u1", "u2", "u3")
        buyer = users[-1]
        package = factory.package(points=100)
        request = factory.request(buyer, package)
        ancestors = await ReferralService(session).walkAncestors(buyer)

        recipients = await PointsService(session).propagatePoints(buyer, ancestors, package, request)
        session.commit()

        # chain depth 3 gives 4 rows
        rows = session.query(Earnings).filter_by(type="points", packageRequestID=request.requestID).all()
        assert len(rows) == len(ancestors) + 1 == 4
        assert all(row.amount == Decimal("100") for row in rows)
        assert all(row.sourceUserID == buyer.userID for row in rows)
        assert [r["level"] for r in recipients] == [0, 1, 2, 3]
        assert all(user.points == 100 for user in users)

    @pytest.mark.asyncio
    async def test_adds_to_existing_points(self, session, factory):
        parent = factory.user("parent", points=950)
        buyer = factory.user("buyer", referrer=parent)
        package = factory.package(points=100)
        request = factory.request(buyer, package)

        recipients = await PointsService(session).propagatePoints(buyer, [parent], package, request)

        assert parent.points == 1050
        assert recipients[1]["totalPoints"] == 1050

    @pytest.mark.asyncio
    async def test_zero_point_package(self, session, factory):
        buyer = factory.user("buyer")
        package = factory.package(points=0)
        request = factory.request(buyer, package)

        recipients = await PointsService(session).propagatePoints(buyer, [], package, request)
        session.flush()

        assert recipients == []
        assert session.query(Earnings).count() == 0
        assert buyer.points == 0
