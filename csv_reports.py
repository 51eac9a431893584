import io
import csv
import logging
from typing import List, Dict, Any, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session

import config
from models import User, Earnings, Rank, Package

logger = logging.getLogger(__name__)

# Dictionary mapping report types to information about the report
REPORTS = {
    "team_full": {
        "name": "Team Full Report",
        "generator": lambda s, u, p: team_full_report(s, u, p)
    },
    "earnings_history": {
        "name": "Earnings History",
        "generator": lambda s, u, p: earnings_history_report(s, u, p)
    }
}

# For simpler usage in the CLI
REPORT_TYPES = {key: info["name"] for key, info in REPORTS.items()}


def generate_csv_report(
        session: Session,
        user: User,
        report_type: str,
        params: Dict[str, Any] = None
) -> Optional[io.BytesIO]:
    """
    Generates a CSV report based on report type and parameters

    Args:
        session: Database session
        user: User the report is about
        report_type: Type of report (one of REPORTS keys)
        params: Additional parameters for report customization

    Returns:
        BytesIO object containing CSV data or None if report generation failed
    """
    if report_type not in REPORTS:
        logger.error(f"Unknown report type: {report_type}")
        return None

    try:
        if params is None:
            params = {}

        headers, data = REPORTS[report_type]["generator"](session, user, params)

        string_output = io.StringIO()
        writer = csv.writer(string_output, delimiter=';')  # Use semicolon for better Excel compatibility

        writer.writerow(headers)
        for row in data:
            writer.writerow(row)

        output = io.BytesIO(string_output.getvalue().encode('utf-8-sig'))  # Use BOM for Excel compatibility
        output.seek(0)
        return output

    except Exception as e:
        logger.error(f"Error generating {report_type} report: {e}", exc_info=True)
        return None


def team_full_report(session: Session, user: User, params: Dict[str, Any]) -> Tuple[List[str], List[List[Any]]]:
    """
    Generate full team report with every member of the downline

    Columns:
    - User ID and username
    - Registration date
    - Level (depth below the report owner)
    - Rank and points
    - Current package
    - Number of direct referrals
    - Commission the report owner earned from this member's packages

    params:
        max_depth: depth limit, defaults to MAX_DOWNLINE_DEPTH
    """
    headers = ["ID", "Username", "Registration Date", "Level", "Rank", "Points", "Package",
               "Direct Referrals", "Commission Earned"]

    max_depth = int(params.get("max_depth", config.MAX_DOWNLINE_DEPTH))
    rank_titles = dict(session.query(Rank.rankID, Rank.title).all())
    package_names = dict(session.query(Package.packageID, Package.name).all())

    rows = []
    visited = {user.userID}
    frontier = [user.userID]
    level = 1

    while frontier and level <= max_depth:
        members = session.query(User).filter(
            User.uplineID.in_(frontier)
        ).order_by(User.uplineID, User.userID).all()

        frontier = []
        for member in members:
            if member.userID in visited:
                continue
            visited.add(member.userID)
            frontier.append(member.userID)

            direct_refs_count = session.query(func.count(User.userID)).filter(
                User.uplineID == member.userID
            ).scalar() or 0

            commission_earned = session.query(func.sum(Earnings.amount)).filter(
                Earnings.userID == user.userID,
                Earnings.sourceUserID == member.userID,
                Earnings.type != "points"
            ).scalar() or 0

            rows.append([
                member.userID,
                member.username,
                member.createdAt.strftime("%Y-%m-%d") if member.createdAt else "",
                level,
                rank_titles.get(member.rankID, ""),
                member.points or 0,
                package_names.get(member.currentPackageID, ""),
                direct_refs_count,
                float(commission_earned)
            ])

        level += 1

    return headers, rows


def earnings_history_report(session: Session, user: User, params: Dict[str, Any]) -> Tuple[
    List[str], List[List[Any]]]:
    """
    Generate ledger of everything the user earned

    params:
        type: optional earning type filter (direct_commission, indirect_commission, points)
    """
    headers = ["Earning ID", "Date", "Type", "Amount", "Rank Tier", "From User", "Request ID", "Description"]

    query = session.query(Earnings).filter(Earnings.userID == user.userID)
    if params.get("type"):
        query = query.filter(Earnings.type == params["type"])

    usernames = dict(session.query(User.userID, User.username).all())

    rows = []
    for earning in query.order_by(Earnings.createdAt.desc(), Earnings.earningID.desc()).all():
        rows.append([
            earning.earningID,
            earning.createdAt.strftime("%Y-%m-%d %H:%M:%S") if earning.createdAt else "",
            earning.type,
            float(earning.amount),
            earning.rankTier or "",
            usernames.get(earning.sourceUserID, ""),
            earning.packageRequestID or "",
            earning.description or ""
        ])

    return headers, rows
