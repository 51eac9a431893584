"""
Admin command line for the commission engine.

Usage:
    python main.py init-db
    python main.py seed-ranks
    python main.py approve 42
    python main.py reject 42 --notes "Payment proof missing"
    python main.py recalc-ranks
    python main.py rank alice
    python main.py tree alice --depth 3
    python main.py orphans --fix
    python main.py report alice earnings_history --out alice.csv
"""
import argparse
import asyncio
import json
import logging
import sys

from init import get_session, init_tables
from models import User
from mlm_system.services.approval_service import ApprovalService
from mlm_system.services.rank_table import RankTable, seedDefaultRanks
from mlm_system.services.rank_service import RankService
from mlm_system.services.downline_service import DownlineService
from mlm_system.services.referral_service import ReferralService
from csv_reports import generate_csv_report, REPORT_TYPES
import config

logger = logging.getLogger(__name__)


def printJSON(data):
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def cmdInitDb(sessionFactory, engine, args) -> int:
    init_tables(engine)
    with sessionFactory() as session:
        seedDefaultRanks(session)
        session.commit()
    logger.info("Database initialized")
    return 0


async def cmdSeedRanks(sessionFactory, engine, args) -> int:
    with sessionFactory() as session:
        results = seedDefaultRanks(session)
        session.commit()
    printJSON(results)
    return 0


async def cmdApprove(sessionFactory, engine, args) -> int:
    result = await ApprovalService(sessionFactory).approvePackageRequest(args.request_id)
    printJSON(result)
    return 0 if result["success"] else 1


async def cmdReject(sessionFactory, engine, args) -> int:
    status = "failed" if args.failed else "rejected"
    result = await ApprovalService(sessionFactory).rejectPackageRequest(args.request_id, args.notes, status)
    printJSON(result)
    return 0 if result["success"] else 1


async def cmdRecalcRanks(sessionFactory, engine, args) -> int:
    with sessionFactory() as session:
        rankService = RankService(session, RankTable.load(session))
        printJSON(await rankService.recalculateAllRanks())
    return 0


async def cmdRank(sessionFactory, engine, args) -> int:
    with sessionFactory() as session:
        user = User.findByUsername(session, args.username)
        if not user:
            logger.error(f"User {args.username} not found")
            return 1
        rankTable = RankTable.load(session)
        current = rankTable.tierOf(user)
        result = await RankService(session, rankTable).getHighestQualifyingRank(user)
        printJSON({
            "username": user.username,
            "points": user.points,
            "currentRank": current.title if current else None,
            "qualifiedRank": result.rank,
            "reason": result.reason,
            "details": result.details
        })
    return 0


async def cmdTree(sessionFactory, engine, args) -> int:
    with sessionFactory() as session:
        downline = DownlineService(session, RankTable.load(session))
        tree = await downline.getDownlineTree(args.username, maxDepth=args.depth)
        if tree is None:
            logger.error(f"User {args.username} not found")
            return 1
        printJSON(tree)
    return 0


async def cmdOrphans(sessionFactory, engine, args) -> int:
    with sessionFactory() as session:
        referrals = ReferralService(session)
        if args.fix:
            results = await referrals.relinkOrphans(dryRun=args.dry_run)
            if not args.dry_run:
                session.commit()
            printJSON(results)
        else:
            printJSON([
                {"userID": u.userID, "username": u.username, "referredBy": u.referredBy}
                for u in await referrals.findOrphans()
            ])
    return 0


async def cmdReport(sessionFactory, engine, args) -> int:
    with sessionFactory() as session:
        user = User.findByUsername(session, args.username)
        if not user:
            logger.error(f"User {args.username} not found")
            return 1
        output = generate_csv_report(session, user, args.report_type)
        if output is None:
            return 1

    data = output.getvalue()
    if args.out:
        with open(args.out, "wb") as f:
            f.write(data)
        logger.info(f"Report written to {args.out}")
    else:
        sys.stdout.write(data.decode("utf-8-sig"))
    return 0


def buildParser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Commission engine admin commands")
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init-db", help="Create tables and seed ranks").set_defaults(handler=cmdInitDb)
    commands.add_parser("seed-ranks", help="Insert or update the default rank ladder").set_defaults(
        handler=cmdSeedRanks)

    approve = commands.add_parser("approve", help="Approve a pending package request")
    approve.add_argument("request_id", type=int)
    approve.set_defaults(handler=cmdApprove)

    reject = commands.add_parser("reject", help="Reject a pending package request")
    reject.add_argument("request_id", type=int)
    reject.add_argument("--notes", default=None)
    reject.add_argument("--failed", action="store_true", help="Mark as failed instead of rejected")
    reject.set_defaults(handler=cmdReject)

    commands.add_parser("recalc-ranks", help="Recompute every user's rank").set_defaults(handler=cmdRecalcRanks)

    rank = commands.add_parser("rank", help="Explain a user's rank qualification")
    rank.add_argument("username")
    rank.set_defaults(handler=cmdRank)

    tree = commands.add_parser("tree", help="Show a user's downline")
    tree.add_argument("username")
    tree.add_argument("--depth", type=int, default=None)
    tree.set_defaults(handler=cmdTree)

    orphans = commands.add_parser("orphans", help="List users whose referrer does not resolve")
    orphans.add_argument("--fix", action="store_true", help="Relink orphans case-insensitively")
    orphans.add_argument("--dry-run", action="store_true")
    orphans.set_defaults(handler=cmdOrphans)

    report = commands.add_parser("report", help="CSV report for a user")
    report.add_argument("username")
    report.add_argument("report_type", choices=sorted(REPORT_TYPES))
    report.add_argument("--out", default=None)
    report.set_defaults(handler=cmdReport)

    return parser


async def main(argv=None) -> int:
    args = buildParser().parse_args(argv)
    sessionFactory, engine = get_session(args.database_url)
    try:
        return await args.handler(sessionFactory, engine, args)
    finally:
        engine.dispose()


if __name__ == '__main__':
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format=config.LOG_FORMAT
    )
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except Exception as e:
        logger.critical(f"Unexpected error: {e}")
        raise
