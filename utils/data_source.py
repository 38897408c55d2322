"""
Reads from the Battle of Platoons database.

Two request shapes feed the scoring engine:
  * the active scoring formula for (battle_type, week_key)
  * raw performance rows for a date range with approval / void filters,
    joined to their agents
plus the agent / depot / company directories used for names and KPIs.
"""

from __future__ import annotations

import logging
from datetime import date

from pymongo import ASCENDING, DESCENDING

from .models import Agent, AggregationMode, RawPerformanceRecord, ScoringFormula, Unit
from .normalize import agent_from_doc, formula_from_doc, index_by_id, record_from_doc, unit_from_doc
from .periods import parse_ymd
from .scoring_engine import normalize_battle_type

_log = logging.getLogger(__name__)

RAW_DATA_FIELDS = {
    "_id": 1,
    "agent_id": 1,
    "leads": 1,
    "payins": 1,
    "sales": 1,
    "date_real": 1,
    "date": 1,
    "approved": 1,
    "published": 1,
    "voided": 1,
    "voided_reason": 1,
    "leads_depot_id": 1,
    "sales_depot_id": 1,
    "company_id": 1,
    "platoon_id": 1,
}

# Order in which the debug cascade relaxes filters when a strict query is empty
RELAXATION_STEPS = [
    ("date", {"use_date_filter": False}),
    ("approved", {"require_approved": False}),
    ("voided", {"require_not_voided": False}),
    ("all", {"use_date_filter": False, "require_approved": False, "require_not_voided": False}),
]


# ---------- Directories ----------
def list_agents(db) -> list[Agent]:
    return [agent_from_doc(d) for d in db.agents.find({}).sort("name", ASCENDING)]


def list_depots(db) -> list[Unit]:
    return [unit_from_doc(d) for d in db.depots.find({}).sort("name", ASCENDING)]


def list_companies(db) -> list[Unit]:
    return [unit_from_doc(d) for d in db.companies.find({}).sort("name", ASCENDING)]


# ---------- Scoring formula ----------
def active_formula_query(battle_type, week_key: str) -> dict:
    # week keys are zero-padded 'YYYY-Www', so string order is week order
    return {
        "battle_type": normalize_battle_type(battle_type).value,
        "status": "published",
        "$and": [
            {
                "$or": [
                    {"effective_start_week_key": None},
                    {"effective_start_week_key": {"$lte": week_key}},
                ]
            },
            {
                "$or": [
                    {"effective_end_week_key": None},
                    {"effective_end_week_key": {"$gte": week_key}},
                ]
            },
        ],
    }


def fetch_active_formula(db, battle_type, week_key: str | None) -> ScoringFormula | None:
    """Newest published formula covering `week_key`, or None."""
    if not week_key:
        return None
    cursor = (
        db.scoring_formulas.find(active_formula_query(battle_type, week_key))
        .sort([("effective_start_week_key", DESCENDING), ("version", DESCENDING)])
        .limit(1)
    )
    docs = list(cursor)
    if not docs:
        return None
    return formula_from_doc(docs[0], week_key=week_key)


# ---------- Raw performance rows ----------
def raw_rows_query(
    start_date: str | None,
    end_date: str | None,
    *,
    require_approved: bool = True,
    require_not_voided: bool = True,
    use_date_filter: bool = True,
    require_published: bool = False,
) -> dict:
    query: dict = {}
    if use_date_filter and start_date and end_date:
        query["date_real"] = {"$gte": start_date, "$lte": end_date}
    if require_approved:
        query["approved"] = True
    if require_published:
        query["published"] = True
    if require_not_voided:
        query["voided"] = {"$ne": True}
    return query


def fetch_raw_rows(db, start_date, end_date, **filters) -> list[dict]:
    return list(db.raw_data.find(raw_rows_query(start_date, end_date, **filters), RAW_DATA_FIELDS))


def _in_range(record: RawPerformanceRecord, start: date | None, end: date | None) -> bool:
    if record.date is None:
        return False
    if start and record.date < start:
        return False
    if end and record.date > end:
        return False
    return True


def fetch_records(
    db,
    start_date: str,
    end_date: str,
    *,
    mode: AggregationMode = AggregationMode.OFFICIAL,
    agents_by_id: dict[str, Agent] | None = None,
    relax_filters: bool = False,
    logger: logging.Logger | None = None,
) -> tuple[list[RawPerformanceRecord], str | None]:
    """
    Raw rows for [start_date, end_date] as canonical records.

    Returns (records, relaxed_filter). relaxed_filter is None for the normal
    strict query. With relax_filters=True (debugging only) an empty strict
    result is retried with progressively fewer filters; the engine still
    drops voided rows, and rows outside the window are removed again when
    only the date filter was relaxed. Relaxing approval admits unreviewed
    rows (approved missing), never rows with approved=false.
    """
    log = logger or _log
    if agents_by_id is None:
        agents_by_id = index_by_id(list_agents(db))

    strict = {
        "require_approved": mode is AggregationMode.OFFICIAL,
        "require_published": mode is AggregationMode.PUBLISHED,
        "require_not_voided": True,
        "use_date_filter": True,
    }
    rows = fetch_raw_rows(db, start_date, end_date, **strict)
    log.debug(
        "[dashboard] raw_data filters from=%s to=%s mode=%s count=%d",
        start_date,
        end_date,
        mode.value,
        len(rows),
    )
    if rows:
        log.debug("[dashboard] raw_data sample %s", rows[0])

    relaxed_filter = None
    if not rows and relax_filters:
        for name, overrides in RELAXATION_STEPS:
            rows = fetch_raw_rows(db, start_date, end_date, **{**strict, **overrides})
            if rows:
                relaxed_filter = name
                break
        if relaxed_filter:
            log.warning("[dashboard] raw_data filter relaxed: %s (%d rows)", relaxed_filter, len(rows))

    if relaxed_filter in ("approved", "all"):
        # explicitly rejected rows stay out; only rows never reviewed are let in
        rows = [row for row in rows if row.get("approved") is True or row.get("approved") is None]

    records = [record_from_doc(row, agents_by_id) for row in rows]

    if relaxed_filter == "date":
        start, end = parse_ymd(start_date), parse_ymd(end_date)
        records = [r for r in records if _in_range(r, start, end)]

    return records, relaxed_filter
