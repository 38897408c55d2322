"""
Scoring aggregation and ranking for Battle of Platoons leaderboards.

Raw daily performance records are grouped by a dimension (leader, depot or
company), summed, scored against the active formula and ranked. Everything
here is pure: no I/O, no module state, fresh output on every call.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import Callable, Optional, Union

from .errors import AggregationInputError
from .models import (
    AggregationMode,
    BattleType,
    GroupIdentity,
    GroupTotal,
    MetricRule,
    RawPerformanceRecord,
    ScoringFormula,
    Unit,
)

_log = logging.getLogger(__name__)

GroupResolver = Callable[[RawPerformanceRecord], Optional[GroupIdentity]]
FormulaLike = Union[ScoringFormula, Iterable[MetricRule], None]

UNKNOWN_NAMES = {
    BattleType.LEADERS: "Unknown Leader",
    BattleType.DEPOTS: "Unknown Depot",
    BattleType.COMPANIES: "Unknown Company",
}


def parse_or_zero(value) -> float:
    """Numeric conversion where anything missing, malformed or non-finite becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        num = float(value)
    except (TypeError, ValueError):
        return 0.0
    return num if math.isfinite(num) else 0.0


def normalize_battle_type(value) -> BattleType:
    if isinstance(value, BattleType):
        return value
    key = str(value or "").strip().lower()
    if key in ("depot", "depots"):
        return BattleType.DEPOTS
    if key in ("company", "companies"):
        return BattleType.COMPANIES
    return BattleType.LEADERS


def _ensure_collection(records) -> None:
    # str/bytes/mappings are iterable but are never a record collection
    if records is None or isinstance(records, (str, bytes, Mapping)):
        raise AggregationInputError(records)
    if not isinstance(records, Iterable):
        raise AggregationInputError(records)


def is_admitted(record: RawPerformanceRecord, mode: AggregationMode = AggregationMode.OFFICIAL) -> bool:
    """Whether a record may contribute to an aggregate under `mode`.

    Voided records are never admitted, whatever the mode.
    """
    if record.voided is True:
        return False
    if mode is AggregationMode.OFFICIAL:
        return record.approved is True
    if mode is AggregationMode.PUBLISHED:
        return record.published is True
    return True


# ---------- Group resolution ----------
def make_group_resolver(
    dimension,
    depots: Mapping[str, Unit] | None = None,
    companies: Mapping[str, Unit] | None = None,
) -> GroupResolver:
    """
    Build the default record -> group mapping for a dimension.

    leaders   : the record's agent, only when the agent is a leader
    depots    : record-level depot (leads, then sales) else the agent's depot
    companies : record-level company else the agent's company

    The returned name/photo may be empty; `group_and_sum` keeps the first
    non-empty value it sees.
    """
    battle_type = normalize_battle_type(dimension)
    depots = depots or {}
    companies = companies or {}

    def resolve_leader(record: RawPerformanceRecord) -> Optional[GroupIdentity]:
        agent = record.agent
        if agent is None or not agent.is_leader:
            return None
        key = str(record.agent_id or agent.id or "")
        if not key:
            return None
        return GroupIdentity(key, agent.name or "", agent.photo_url or "")

    def resolve_depot(record: RawPerformanceRecord) -> Optional[GroupIdentity]:
        agent = record.agent
        key = record.leads_depot_id or record.sales_depot_id or (agent.depot_id if agent else None)
        if not key:
            return None
        key = str(key)
        depot = depots.get(key)
        return GroupIdentity(key, depot.name if depot else "", depot.photo_url if depot else "")

    def resolve_company(record: RawPerformanceRecord) -> Optional[GroupIdentity]:
        agent = record.agent
        key = record.company_id or (agent.company_id if agent else None)
        if not key:
            return None
        key = str(key)
        company = companies.get(key)
        return GroupIdentity(key, company.name if company else "", company.photo_url if company else "")

    if battle_type is BattleType.DEPOTS:
        return resolve_depot
    if battle_type is BattleType.COMPANIES:
        return resolve_company
    return resolve_leader


# ---------- Aggregation ----------
def group_and_sum(
    records: Iterable[RawPerformanceRecord],
    dimension,
    resolve_group_key: GroupResolver | None = None,
    *,
    mode: AggregationMode = AggregationMode.OFFICIAL,
) -> dict[str, GroupTotal]:
    """
    Sum leads/payins/sales per group.

    Voided records are always dropped, even if the caller already filtered.
    Records the resolver cannot place (no key) are skipped silently; that is
    unassigned data, not an error. A non-iterable `records` raises
    AggregationInputError.
    """
    _ensure_collection(records)
    resolver = resolve_group_key or make_group_resolver(dimension)

    grouped: dict[str, GroupTotal] = {}
    for record in records:
        if not is_admitted(record, mode):
            continue

        identity = resolver(record)
        if identity is None or not identity.key:
            continue

        item = grouped.get(identity.key)
        if item is None:
            item = GroupTotal(key=identity.key)
            grouped[identity.key] = item

        # first non-empty display data wins
        if not item.name and identity.name:
            item.name = identity.name
        if not item.photo_url and identity.photo_url:
            item.photo_url = identity.photo_url

        item.leads += parse_or_zero(record.leads)
        item.payins += parse_or_zero(record.payins)
        item.sales += parse_or_zero(record.sales)

    return grouped


def summarize_totals(
    records: Iterable[RawPerformanceRecord],
    mode: AggregationMode = AggregationMode.OFFICIAL,
) -> dict[str, float]:
    """Overall lead and sales totals (KPI tiles) over the admitted records."""
    _ensure_collection(records)
    totals = {"totalLeads": 0.0, "totalSales": 0.0}
    for record in records:
        if not is_admitted(record, mode):
            continue
        totals["totalLeads"] += parse_or_zero(record.leads)
        totals["totalSales"] += parse_or_zero(record.sales)
    return totals


# ---------- Scoring ----------
def score_metric(actual, divisor, max_points) -> float:
    """Linear score capped at `max_points`; 0 for non-finite inputs, divisor <= 0 or actual <= 0."""
    # non-finite inputs collapse to 0 here, which the guards below turn into a 0 score
    actual_value = parse_or_zero(actual)
    divisor_value = parse_or_zero(divisor)
    max_value = parse_or_zero(max_points)

    if divisor_value <= 0 or actual_value <= 0 or max_value <= 0:
        return 0.0

    score = actual_value / divisor_value * max_value
    return max(0.0, min(score, max_value))


def _rules_of(formula: FormulaLike) -> list[MetricRule]:
    if formula is None:
        return []
    if isinstance(formula, ScoringFormula):
        return list(formula.metrics)
    return [rule for rule in formula if isinstance(rule, MetricRule)]


def _metric_lookup(totals) -> Callable[[str], float]:
    if isinstance(totals, GroupTotal):
        return lambda key: parse_or_zero(getattr(totals, key, 0))
    if isinstance(totals, Mapping):
        lowered = {str(k).lower(): v for k, v in totals.items()}
        return lambda key: parse_or_zero(lowered.get(key))
    return lambda key: 0.0


def score_total(battle_type, totals, formula: FormulaLike) -> float:
    """
    Sum of `score_metric` over the formula's rules, in rule order.

    Metric keys are matched case-insensitively. Depot battles never score
    pay-ins. An absent or empty formula scores 0.
    """
    normalized = normalize_battle_type(battle_type)
    lookup = _metric_lookup(totals)

    total = 0.0
    for rule in _rules_of(formula):
        key = str(rule.key or "").strip().lower()
        if not key:
            continue
        if normalized is BattleType.DEPOTS and key == "payins":
            continue
        total += score_metric(lookup(key), rule.divisor, rule.max_points)
    return total


# ---------- Ranking ----------
def _rank_key(row: GroupTotal):
    return (
        -parse_or_zero(row.points),
        -parse_or_zero(row.sales),
        -parse_or_zero(row.leads),
        -parse_or_zero(row.payins),
        str(row.name or ""),
        str(row.key),
    )


def rank_rows(groups: Iterable[GroupTotal]) -> list[GroupTotal]:
    """
    Order groups by points, then sales, leads, payins (all descending), then
    name and key (ascending), and number them 1..N.

    Ranks are dense and sequential: equal scores still get distinct ranks.
    Returns new GroupTotal objects; ranking a ranked list is a no-op.
    """
    if isinstance(groups, Mapping):
        groups = groups.values()
    _ensure_collection(groups)

    ordered = sorted(groups, key=_rank_key)
    return [replace(row, rank=idx) for idx, row in enumerate(ordered, start=1)]


def build_leaderboard(
    records: Iterable[RawPerformanceRecord],
    battle_type,
    formula: FormulaLike,
    *,
    depots: Mapping[str, Unit] | None = None,
    companies: Mapping[str, Unit] | None = None,
    resolve_group_key: GroupResolver | None = None,
    mode: AggregationMode = AggregationMode.OFFICIAL,
    logger: logging.Logger | None = None,
) -> list[GroupTotal]:
    """Group, score and rank `records` for one battle type."""
    log = logger or _log
    normalized = normalize_battle_type(battle_type)
    resolver = resolve_group_key or make_group_resolver(normalized, depots, companies)

    grouped = group_and_sum(records, normalized, resolver, mode=mode)
    if not _rules_of(formula):
        log.debug("[Scoring] No metric rules for battle_type=%s; all points are 0", normalized.value)

    fallback_name = UNKNOWN_NAMES[normalized]
    scored = [
        replace(
            row,
            name=row.name or fallback_name,
            points=score_total(normalized, row, formula),
        )
        for row in grouped.values()
    ]

    ranked = rank_rows(scored)
    log.debug("[Scoring] battle_type=%s groups=%d", normalized.value, len(ranked))
    return ranked
