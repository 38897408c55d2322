from __future__ import annotations

from dataclasses import dataclass
import datetime as dt
from enum import Enum
from typing import NamedTuple, Optional


class BattleType(str, Enum):
    """Competition dimension being scored."""

    LEADERS = "leaders"
    DEPOTS = "depots"
    COMPANIES = "companies"


class AgentRole(str, Enum):
    LEADER = "leader"
    OTHER = "other"


class AggregationMode(str, Enum):
    """Which non-voided rows an aggregation admits.

    OFFICIAL  - approved rows only (admin dashboard)
    PUBLISHED - rows published by a super admin (public leaderboard)
    RAW       - every non-voided row, approved or not (debugging)
    """

    OFFICIAL = "official"
    PUBLISHED = "published"
    RAW = "raw"


METRIC_KEYS = ("leads", "payins", "sales")


@dataclass(frozen=True)
class Agent:
    id: str
    name: str = ""
    role: AgentRole = AgentRole.OTHER
    depot_id: Optional[str] = None
    company_id: Optional[str] = None
    platoon_id: Optional[str] = None
    photo_url: str = ""

    @property
    def is_leader(self) -> bool:
        return self.role is AgentRole.LEADER


@dataclass(frozen=True)
class Unit:
    """Depot or company directory entry."""

    id: str
    name: str = ""
    photo_url: str = ""


@dataclass(frozen=True)
class RawPerformanceRecord:
    """One daily entry for one agent."""

    id: str
    agent_id: str
    date: Optional[dt.date] = None
    leads: float = 0.0
    payins: float = 0.0
    sales: float = 0.0
    approved: bool = False
    voided: bool = False
    published: bool = False
    leads_depot_id: Optional[str] = None
    sales_depot_id: Optional[str] = None
    company_id: Optional[str] = None
    platoon_id: Optional[str] = None
    agent: Optional[Agent] = None


@dataclass(frozen=True)
class MetricRule:
    key: str
    divisor: float
    max_points: float

    def to_dict(self) -> dict:
        return {"key": self.key, "divisor": self.divisor, "maxPoints": self.max_points}


@dataclass(frozen=True)
class ScoringFormula:
    battle_type: BattleType
    metrics: tuple[MetricRule, ...] = ()
    week_key: Optional[str] = None
    id: Optional[str] = None
    name: str = ""
    status: str = "draft"
    version: int = 0
    effective_start_week_key: Optional[str] = None
    effective_end_week_key: Optional[str] = None

    @property
    def is_published(self) -> bool:
        return self.status == "published"

    @property
    def total_points(self) -> float:
        return sum(rule.max_points for rule in self.metrics)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "battleType": self.battle_type.value,
            "status": self.status,
            "version": self.version,
            "weekKey": self.week_key,
            "effectiveStartWeekKey": self.effective_start_week_key,
            "effectiveEndWeekKey": self.effective_end_week_key,
            "metrics": [rule.to_dict() for rule in self.metrics],
        }


class GroupIdentity(NamedTuple):
    """What a record resolves to when grouped: key plus display data."""

    key: str
    name: str = ""
    photo_url: str = ""


@dataclass
class GroupTotal:
    key: str
    name: str = ""
    photo_url: str = ""
    leads: float = 0.0
    payins: float = 0.0
    sales: float = 0.0
    points: float = 0.0
    rank: int = 0

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "name": self.name,
            "photoUrl": self.photo_url,
            "leads": self.leads,
            "payins": self.payins,
            "sales": self.sales,
            "points": self.points,
            "rank": self.rank,
        }
