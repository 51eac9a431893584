"""Tests for upline walking and orphan repair."""

import pytest

import config

from models import User
from mlm_system.services.referral_service import ReferralService


class TestWalkAncestors:
    """Upline walk from a user to the root."""

    @pytest.mark.asyncio
    async def test_nearest_first(self, session, factory):
        c, b, a = factory.chain("carol", "bob", "alice")

        ancestors = await ReferralService(session).walkAncestors(a)

        assert [u.username for u in ancestors] == ["bob", "carol"]

    @pytest.mark.asyncio
    async def test_root_has_no_ancestors(self, session, factory):
        root = factory.user("root")

        assert await ReferralService(session).walkAncestors(root) == []

    @pytest.mark.asyncio
    async def test_accepts_id_and_username(self, session, factory):
        c, b, a = factory.chain("carol", "bob", "alice")
        referrals = ReferralService(session)

        byId = await referrals.walkAncestors(a.userID)
        byName = await referrals.walkAncestors("ALICE")

        assert [u.userID for u in byId] == [b.userID, c.userID]
        assert [u.userID for u in byName] == [b.userID, c.userID]

    @pytest.mark.asyncio
    async def test_dangling_referrer_truncates_chain(self, session, factory):
        """A referrer that does not exist ends the walk, it is not an error."""
        orphan = factory.user("orphan")
        orphan.uplineID = 999
        session.commit()

        assert await ReferralService(session).walkAncestors(orphan) == []

    @pytest.mark.asyncio
    async def test_dangling_referrer_above_first_level(self, session, factory):
        b, a = factory.chain("bob", "alice")
        b.uplineID = 999
        session.commit()

        ancestors = await ReferralService(session).walkAncestors(a)

        assert [u.username for u in ancestors] == ["bob"]

    @pytest.mark.asyncio
    async def test_cycle_terminates(self, session, factory):
        a = factory.user("alice")
        b = factory.user("bob")
        a.uplineID = b.userID
        b.uplineID = a.userID
        session.commit()

        ancestors = await ReferralService(session).walkAncestors(a)

        assert [u.username for u in ancestors] == ["bob"]

    @pytest.mark.asyncio
    async def test_longer_cycle_visits_each_user_once(self, session, factory):
        c, b, a = factory.chain("carol", "bob", "alice")
        c.uplineID = a.userID
        session.commit()

        ancestors = await ReferralService(session).walkAncestors(a)

        assert [u.username for u in ancestors] == ["bob", "carol"]

    @pytest.mark.asyncio
    async def test_depth_limit(self, session, factory):
        users = factory.chain(*[f"user{i}" for i in range(6)])

        ancestors = await ReferralService(session).walkAncestors(users[-1], maxDepth=3)

        assert [u.username for u in ancestors] == ["user4", "user3", "user2"]

    @pytest.mark.asyncio
    async def test_unknown_user(self, session):
        assert await ReferralService(session).walkAncestors(12345) == []


class TestOrphans:
    """Users whose referral username did not resolve."""

    def test_register_links_case_insensitively(self, session, factory):
        carol = factory.user("Carol")
        bob = User.register(session, "bob", referredBy="  CAROL ")

        assert bob.uplineID == carol.userID
        assert bob.referredBy == "CAROL"

    def test_register_rejects_duplicates(self, session, factory):
        factory.user("carol")

        with pytest.raises(ValueError):
            User.register(session, "CAROL")

    def test_register_rejects_empty_username(self, session):
        with pytest.raises(ValueError):
            User.register(session, "   ")

    @pytest.mark.asyncio
    async def test_find_orphans(self, session, factory):
        factory.user("root")
        lost = User.register(session, "lost", referredBy="ghost")
        dangling = factory.user("dangling")
        dangling.referredBy = "nobody"
        dangling.uplineID = 999
        session.commit()

        orphans = await ReferralService(session).findOrphans()

        assert [u.userID for u in orphans] == [lost.userID, dangling.userID]

    @pytest.mark.asyncio
    async def test_relink_orphans(self, session, factory):
        lost = User.register(session, "lost", referredBy="ghost")
        unresolved = User.register(session, "stray", referredBy="nobody")
        session.commit()
        ghost = factory.user("Ghost")

        results = await ReferralService(session).relinkOrphans()
        session.commit()

        assert results["linked"] == ["lost"]
        assert results["unresolved"] == ["stray"]
        assert lost.uplineID == ghost.userID
        assert unresolved.uplineID is None

    @pytest.mark.asyncio
    async def test_relink_dry_run_changes_nothing(self, session, factory):
        lost = User.register(session, "lost", referredBy="ghost")
        session.commit()
        factory.user("ghost")

        results = await ReferralService(session).relinkOrphans(dryRun=True)

        assert results["linked"] == ["lost"]
        assert lost.uplineID is None

    @pytest.mark.asyncio
    async def test_relink_skips_self_reference(self, session):
        selfish = User.register(session, "selfish", referredBy="SELFISH")
        session.commit()

        results = await ReferralService(session).relinkOrphans()

        assert results["skipped"] == ["selfish"]
        assert selfish.uplineID is None

    @pytest.mark.asyncio
    async def test_relink_skips_links_that_close_a_cycle(self, session):
        x = User.register(session, "x", referredBy="y")
        y = User.register(session, "y", referredBy="x")
        session.commit()
        assert y.uplineID == x.userID

        results = await ReferralService(session).relinkOrphans()

        assert results["skipped"] == ["x"]
        assert x.uplineID is None

    @pytest.mark.asyncio
    async def test_relink_detects_cycle_longer_than_chain_limit(self, session, factory):
        users = factory.chain(*[f"member{i}" for i in range(config.MAX_CHAIN_DEPTH + 5)])
        top, bottom = users[0], users[-1]
        top.referredBy = bottom.username
        session.commit()

        results = await ReferralService(session).relinkOrphans()

        assert results["skipped"] == [top.username]
        assert top.uplineID is None
