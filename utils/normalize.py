"""
Normalization of stored documents into the canonical scoring shapes.

Rows written by the admin uploads, older imports and the formula editor do not
agree on field names (photoURL vs photo_url, maxPoints vs max_points, ...).
Everything is mapped here, once, so the scoring engine only sees
RawPerformanceRecord / Agent / MetricRule / ScoringFormula.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, timezone

from .models import (
    Agent,
    AgentRole,
    MetricRule,
    RawPerformanceRecord,
    ScoringFormula,
    Unit,
)
from .periods import parse_ymd
from .scoring_engine import normalize_battle_type, parse_or_zero

LEADER_ROLE_NAMES = frozenset({"platoon", "leader", "squad", "team"})


def _first(doc: Mapping, *names, default=None):
    for name in names:
        val = doc.get(name)
        if val is not None and val != "":
            return val
    return default


def _opt_str(value) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def classify_role(role) -> AgentRole:
    if isinstance(role, AgentRole):
        return role
    if str(role or "").strip().lower() in LEADER_ROLE_NAMES:
        return AgentRole.LEADER
    return AgentRole.OTHER


def photo_url_of(doc: Mapping) -> str:
    return str(_first(doc, "photo_url", "photoURL", "photoUrl", default="") or "")


def agent_from_doc(doc: Mapping) -> Agent:
    return Agent(
        id=str(_first(doc, "id", "_id", default="")),
        name=str(doc.get("name") or ""),
        role=classify_role(doc.get("role")),
        depot_id=_opt_str(_first(doc, "depot_id", "depotId")),
        company_id=_opt_str(_first(doc, "company_id", "companyId")),
        platoon_id=_opt_str(_first(doc, "platoon_id", "platoonId")),
        photo_url=photo_url_of(doc),
    )


def unit_from_doc(doc: Mapping) -> Unit:
    return Unit(
        id=str(_first(doc, "id", "_id", default="")),
        name=str(doc.get("name") or ""),
        photo_url=photo_url_of(doc),
    )


def index_by_id(items) -> dict:
    return {item.id: item for item in items if item.id}


def parse_timestamp(value) -> date | None:
    """Row date from an ISO string, a datetime or a {seconds, nanoseconds} timestamp object."""
    if value is None:
        return None
    if isinstance(value, (date, datetime, str)):
        if isinstance(value, str) and "T" in value:
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
            except ValueError:
                return None
        return parse_ymd(value)
    if isinstance(value, Mapping):
        seconds = _first(value, "_seconds", "seconds")
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            nanos = parse_or_zero(_first(value, "_nanoseconds", "nanoseconds", default=0))
            try:
                return datetime.fromtimestamp(seconds + nanos / 1e9, tz=timezone.utc).date()
            except (OverflowError, OSError, ValueError):
                return None
    return None


def row_date(doc: Mapping) -> date | None:
    if doc.get("date_real"):
        return parse_ymd(doc["date_real"])
    return parse_timestamp(doc.get("date"))


def record_from_doc(doc: Mapping, agents_by_id: Mapping[str, Agent] | None = None) -> RawPerformanceRecord:
    """Canonical record for a raw_data document, joined to its agent."""
    agent_id = str(_first(doc, "agent_id", "agentId", default=""))

    embedded = _first(doc, "agent", "agents")
    if isinstance(embedded, Mapping):
        agent = agent_from_doc(embedded)
    else:
        agent = (agents_by_id or {}).get(agent_id)

    return RawPerformanceRecord(
        id=str(_first(doc, "id", "_id", default="")),
        agent_id=agent_id,
        date=row_date(doc),
        leads=parse_or_zero(doc.get("leads")),
        payins=parse_or_zero(doc.get("payins")),
        sales=parse_or_zero(doc.get("sales")),
        approved=doc.get("approved") is True,
        voided=doc.get("voided") is True,
        published=doc.get("published") is True,
        leads_depot_id=_opt_str(_first(doc, "leads_depot_id", "leadsDepotId")),
        sales_depot_id=_opt_str(_first(doc, "sales_depot_id", "salesDepotId")),
        company_id=_opt_str(_first(doc, "company_id", "companyId")),
        platoon_id=_opt_str(_first(doc, "platoon_id", "platoonId")),
        agent=agent,
    )


def metric_rule_from_doc(doc) -> MetricRule | None:
    if isinstance(doc, MetricRule):
        return doc
    if not isinstance(doc, Mapping):
        return None
    key = str(_first(doc, "key", "metric", "name", default="")).strip().lower()
    if not key:
        return None
    return MetricRule(
        key=key,
        divisor=parse_or_zero(_first(doc, "divisor", "division", default=0)),
        max_points=parse_or_zero(_first(doc, "maxPoints", "max_points", "points", default=0)),
    )


def metric_docs_of(doc: Mapping) -> list:
    """The metric list of a formula document, wherever the editor put it."""
    config = doc.get("config")
    metrics = doc.get("metrics")
    for candidate in (
        config.get("metrics") if isinstance(config, Mapping) else None,
        metrics.get("metrics") if isinstance(metrics, Mapping) else None,
        metrics,
        config,
    ):
        if isinstance(candidate, list):
            return candidate
    return []


def metric_rules_from_docs(docs) -> tuple[MetricRule, ...]:
    rules = (metric_rule_from_doc(d) for d in (docs or []))
    return tuple(rule for rule in rules if rule is not None)


def formula_from_doc(doc: Mapping | None, week_key: str | None = None) -> ScoringFormula | None:
    if not doc:
        return None
    return ScoringFormula(
        battle_type=normalize_battle_type(doc.get("battle_type") or doc.get("battleType")),
        metrics=metric_rules_from_docs(metric_docs_of(doc)),
        week_key=week_key or doc.get("week_key"),
        id=_opt_str(_first(doc, "id", "_id")),
        name=str(_first(doc, "name", "title", default="") or ""),
        status=str(doc.get("status") or "draft").lower(),
        version=int(parse_or_zero(_first(doc, "version", "revision", default=0))),
        effective_start_week_key=_opt_str(
            _first(doc, "effective_start_week_key", "start_week_key", "start_week")
        ),
        effective_end_week_key=_opt_str(
            _first(doc, "effective_end_week_key", "end_week_key", "end_week")
        ),
    )
