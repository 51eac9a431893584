"""Tests for qualifying line counts below a user."""

import pytest

from mlm_system.services.downline_service import DownlineService
from mlm_system.utils.deadline import Deadline


def diamondLines(factory, sponsor, count, depth=2, prefix="line"):
    """count separate lines under sponsor, each with a Diamond at depth."""
    for line in range(count):
        parent = sponsor
        for level in range(1, depth + 1):
            rank = "Diamond" if level == depth else "Consultant"
            parent = factory.user(f"{prefix}{line}_{level}", referrer=parent, rank=rank)


class TestCountQualifyingLines:

    @pytest.mark.asyncio
    async def test_one_line_counts_once(self, session, factory, rank_table):
        """Three Diamonds stacked in a single line are one qualifying line."""
        sponsor = factory.user("sponsor")
        root = factory.user("root", referrer=sponsor)
        d1 = factory.user("d1", referrer=root, rank="Diamond")
        d2 = factory.user("d2", referrer=d1, rank="Diamond")
        factory.user("d3", referrer=d2, rank="Diamond")

        downline = DownlineService(session, rank_table)
        count = await downline.countQualifyingLines(sponsor, rank_table.rankAtLeast("Diamond"))

        assert count == 1

    @pytest.mark.asyncio
    async def test_separate_lines_counted(self, session, factory, rank_table):
        sponsor = factory.user("sponsor")
        diamondLines(factory, sponsor, 3)
        factory.user("empty_line", referrer=sponsor)

        downline = DownlineService(session, rank_table)

        assert await downline.countLinesWithRank(sponsor, "Diamond") == 3

    @pytest.mark.asyncio
    async def test_higher_ranks_qualify(self, session, factory, rank_table):
        sponsor = factory.user("sponsor")
        factory.user("amb", referrer=sponsor, rank="Ambassador")

        downline = DownlineService(session, rank_table)

        assert await downline.countLinesWithRank(sponsor, "Diamond") == 1

    @pytest.mark.asyncio
    async def test_depth_bound(self, session, factory, rank_table):
        sponsor = factory.user("sponsor")
        diamondLines(factory, sponsor, 1, depth=4)

        downline = DownlineService(session, rank_table, maxDepth=3)

        assert await downline.countLinesWithRank(sponsor, "Diamond") == 0
        assert await downline.countQualifyingLines(
            sponsor, rank_table.rankAtLeast("Diamond"), maxDepth=4
        ) == 1

    @pytest.mark.asyncio
    async def test_cycle_in_downline_terminates(self, session, factory, rank_table):
        sponsor = factory.user("sponsor")
        a = factory.user("a", referrer=sponsor)
        b = factory.user("b", referrer=a)
        sponsor.uplineID = b.userID
        session.commit()

        downline = DownlineService(session, rank_table)

        assert await downline.countLinesWithRank(sponsor, "Diamond") == 0

    @pytest.mark.asyncio
    async def test_expired_budget_fails_closed(self, session, factory, rank_table):
        sponsor = factory.user("sponsor")
        diamondLines(factory, sponsor, 3)

        downline = DownlineService(session, rank_table, deadline=Deadline(0))

        assert await downline.countLinesWithRank(sponsor, "Diamond") == 0

    @pytest.mark.asyncio
    async def test_cache_cleared_after_rank_change(self, session, factory, rank_table):
        sponsor = factory.user("sponsor")
        member = factory.user("member", referrer=sponsor)
        downline = DownlineService(session, rank_table)

        assert await downline.countLinesWithRank(sponsor, "Diamond") == 0

        member.rankID = rank_table.byTitle("Diamond").rankID
        assert await downline.countLinesWithRank(sponsor, "Diamond") == 0

        downline.clearCache()
        assert await downline.countLinesWithRank(sponsor, "Diamond") == 1


class TestMeetsRequirement:

    @pytest.mark.asyncio
    async def test_sapphire_diamond_needs_three_lines(self, session, factory, rank_table):
        sponsor = factory.user("sponsor", points=24000)
        diamondLines(factory, sponsor, 2)
        tier = rank_table.byTitle("Sapphire Diamond")
        downline = DownlineService(session, rank_table)

        result = await downline.meetsRequirement(sponsor, tier)
        assert not result.qualifies
        assert result.details["lineCounts"] == {"Diamond": 2}

        diamondLines(factory, sponsor, 1, prefix="extra")
        downline.clearCache()

        result = await downline.meetsRequirement(sponsor, tier)
        assert result.qualifies
        assert result.rank == "Sapphire Diamond"


class TestDownlineTree:

    @pytest.mark.asyncio
    async def test_nested_tree(self, session, factory, rank_table):
        c, b, a = factory.chain("carol", "bob", "alice")
        factory.user("dave", referrer=c, rank="Manager")

        tree = await DownlineService(session, rank_table).getDownlineTree("carol")

        assert tree["username"] == "carol"
        assert [child["username"] for child in tree["children"]] == ["bob", "dave"]
        assert tree["children"][0]["children"][0]["username"] == "alice"
        assert tree["children"][1]["rank"] == "Manager"

    @pytest.mark.asyncio
    async def test_tree_depth_limit(self, session, factory, rank_table):
        factory.chain("carol", "bob", "alice")

        tree = await DownlineService(session, rank_table).getDownlineTree("carol", maxDepth=1)

        assert tree["children"][0]["children"] == []

    @pytest.mark.asyncio
    async def test_unknown_user(self, session, rank_table):
        assert await DownlineService(session, rank_table).getDownlineTree("nobody") is None
