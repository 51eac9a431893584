# mlm_system/config/ranks.py
"""
MLM ranks configuration and constants.

Every rank tier carries its own requirement object. Points-only tiers use
PointsRequirement, the upper tiers use DownlineRequirement, which is a list
of alternatives (any one is enough), each alternative being a group of line
conditions that must all hold.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple


class EarningType(Enum):
    DIRECT_COMMISSION = "direct_commission"
    INDIRECT_COMMISSION = "indirect_commission"
    POINTS = "points"


class RequestStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FAILED = "failed"


# rankTitle -> number of direct lines holding a member at or above that rank
LineCounter = Callable[[str], Awaitable[int]]


@dataclass
class QualificationResult:
    qualifies: bool
    reason: str
    rank: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LineCondition:
    rankTitle: str
    lines: int

    def describe(self) -> str:
        return f"{self.lines} lines with {self.rankTitle}+"


@dataclass(frozen=True)
class PointsRequirement:
    """Tier reached by points alone."""

    requiresDownline = False

    async def evaluate(self, countLines: LineCounter) -> QualificationResult:
        return QualificationResult(qualifies=True, reason="No downline requirement")

    def toJSON(self) -> Optional[Dict]:
        return None

    def describe(self) -> str:
        return "points only"


@dataclass(frozen=True)
class DownlineRequirement:
    """Tier that also needs a number of qualifying downline lines."""

    options: Tuple[Tuple[LineCondition, ...], ...]

    requiresDownline = True

    async def evaluate(self, countLines: LineCounter) -> QualificationResult:
        counts: Dict[str, int] = {}

        for option in self.options:
            satisfied = True
            for condition in option:
                if condition.rankTitle not in counts:
                    counts[condition.rankTitle] = await countLines(condition.rankTitle)
                if counts[condition.rankTitle] < condition.lines:
                    satisfied = False
                    break

            if satisfied:
                return QualificationResult(
                    qualifies=True,
                    reason=f"Meets downline requirement: {self._describeOption(option)}",
                    details={"lineCounts": dict(counts)}
                )

        return QualificationResult(
            qualifies=False,
            reason=f"Insufficient qualifying lines, need {self.describe()}",
            details={"lineCounts": dict(counts)}
        )

    @staticmethod
    def _describeOption(option: Tuple[LineCondition, ...]) -> str:
        return " and ".join(condition.describe() for condition in option)

    def describe(self) -> str:
        return " or ".join(f"({self._describeOption(option)})" for option in self.options)

    def toJSON(self) -> Dict:
        return {
            "type": "downline",
            "options": [
                [{"rank": c.rankTitle, "lines": c.lines} for c in option]
                for option in self.options
            ]
        }


Requirement = Any  # PointsRequirement | DownlineRequirement


def parseRequirement(data: Optional[Dict]) -> Requirement:
    """Builds a requirement object from the JSON stored on a Rank row."""
    if not data or data.get("type", "points") == "points":
        return PointsRequirement()

    if data["type"] != "downline":
        raise ValueError(f"Unknown rank requirement type: {data['type']}")

    options = []
    for option in data.get("options", []):
        conditions = tuple(
            LineCondition(rankTitle=item["rank"], lines=int(item["lines"]))
            for item in option
        )
        if conditions:
            options.append(conditions)

    if not options:
        return PointsRequirement()
    return DownlineRequirement(options=tuple(options))


@dataclass(frozen=True)
class RankTier:
    rankID: int
    title: str
    requiredPoints: int
    level: int
    earnsIndirect: bool
    requirement: Requirement = field(default_factory=PointsRequirement)

    @property
    def requiresDownline(self) -> bool:
        return self.requirement.requiresDownline

    def __str__(self):
        return self.title


def _downline(*options: List[Tuple[str, int]]) -> Dict:
    return {
        "type": "downline",
        "options": [[{"rank": rank, "lines": lines} for rank, lines in option] for option in options]
    }


# Canonical rank ladder, seeded into the ranks table
DEFAULT_RANKS = [
    {
        "title": "Consultant",
        "requiredPoints": 0,
        "earnsIndirect": False,
        "requirement": None,
        "details": "Entry level rank"
    },
    {
        "title": "Manager",
        "requiredPoints": 1000,
        "earnsIndirect": True,
        "requirement": None,
        "details": "First management level"
    },
    {
        "title": "Sapphire Manager",
        "requiredPoints": 2000,
        "earnsIndirect": True,
        "requirement": None,
        "details": "Advanced management level"
    },
    {
        "title": "Diamond",
        "requiredPoints": 8000,
        "earnsIndirect": True,
        "requirement": None,
        "details": "Premium level"
    },
    {
        "title": "Sapphire Diamond",
        "requiredPoints": 24000,
        "earnsIndirect": True,
        "requirement": _downline([("Diamond", 3)]),
        "details": "3 lines with a Diamond or higher"
    },
    {
        "title": "Ambassador",
        "requiredPoints": 50000,
        "earnsIndirect": True,
        "requirement": _downline([("Diamond", 6)]),
        "details": "6 lines with a Diamond or higher"
    },
    {
        "title": "Sapphire Ambassador",
        "requiredPoints": 100000,
        "earnsIndirect": True,
        "requirement": _downline([("Ambassador", 3)], [("Diamond", 10)]),
        "details": "3 Ambassador lines or 10 Diamond lines"
    },
    {
        "title": "Royal Ambassador",
        "requiredPoints": 200000,
        "earnsIndirect": True,
        "requirement": _downline([("Sapphire Ambassador", 3)], [("Diamond", 15)]),
        "details": "3 Sapphire Ambassador lines or 15 Diamond lines"
    },
    {
        "title": "Global Ambassador",
        "requiredPoints": 500000,
        "earnsIndirect": True,
        "requirement": _downline([("Royal Ambassador", 3)], [("Diamond", 25)]),
        "details": "3 Royal Ambassador lines or 25 Diamond lines"
    },
    {
        "title": "Honory Share Holder",
        "requiredPoints": 1000000,
        "earnsIndirect": True,
        "requirement": _downline([("Global Ambassador", 3)], [("Diamond", 50), ("Royal Ambassador", 10)]),
        "details": "3 Global Ambassador lines or 50 Diamond lines plus 10 Royal Ambassador lines"
    },
]
