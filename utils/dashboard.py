from __future__ import annotations

import logging

from .data_source import fetch_active_formula, fetch_records, list_agents, list_companies, list_depots
from .models import AggregationMode
from .normalize import index_by_id
from .periods import default_date_range, iso_week_key
from .scoring_engine import build_leaderboard, normalize_battle_type, summarize_totals

_log = logging.getLogger(__name__)

PODIUM_SIZE = 3


def get_dashboard_data(
    db,
    mode=None,
    date_from=None,
    date_to=None,
    *,
    aggregation_mode: AggregationMode = AggregationMode.OFFICIAL,
    relax_filters: bool = False,
    logger: logging.Logger | None = None,
) -> dict:
    """
    KPIs and the ranked leaderboard for one battle type over a date range.

    The formula is the one active in the ISO week of the range's end date.
    Without an active formula every group scores 0 and the ranking falls
    back to the sales / leads / payins / name tie-breaks.
    """
    log = logger or _log
    battle_type = normalize_battle_type(mode)
    start_date, end_date = default_date_range(date_from, date_to)
    week_key = iso_week_key(end_date)

    agents = list_agents(db)
    depots = list_depots(db)
    companies = list_companies(db)
    formula = fetch_active_formula(db, battle_type, week_key)
    if formula is None:
        log.warning(
            "[dashboard] No active scoring formula for battle_type=%s week_key=%s",
            battle_type.value,
            week_key,
        )

    records, relaxed_filter = fetch_records(
        db,
        start_date,
        end_date,
        mode=aggregation_mode,
        agents_by_id=index_by_id(agents),
        relax_filters=relax_filters,
        logger=log,
    )
    # once approval was relaxed, unapproved rows stay in; voided rows never do
    if relaxed_filter in ("approved", "all"):
        aggregation_mode = AggregationMode.RAW

    rows = build_leaderboard(
        records,
        battle_type,
        formula,
        depots=index_by_id(depots),
        companies=index_by_id(companies),
        mode=aggregation_mode,
        logger=log,
    )
    log.debug("[dashboard] leaderboard rows %d", len(rows))

    totals = summarize_totals(records, aggregation_mode)

    return {
        "battleType": battle_type.value,
        "dateFrom": start_date,
        "dateTo": end_date,
        "weekKey": week_key,
        "formula": formula.to_dict() if formula else None,
        "relaxedFilter": relaxed_filter,
        "kpis": {
            "leadersCount": sum(1 for a in agents if a.is_leader),
            "companiesCount": len(companies),
            "depotsCount": len(depots),
            "totalLeads": totals["totalLeads"],
            "totalSales": totals["totalSales"],
        },
        "leaderboardRows": [row.to_dict() for row in rows],
    }


def get_public_summary(db, battle_type=None, date_from=None, date_to=None, *, logger=None) -> dict:
    """Public leaderboard: published rows only, top three split out as the podium."""
    data = get_dashboard_data(
        db,
        battle_type,
        date_from,
        date_to,
        aggregation_mode=AggregationMode.PUBLISHED,
        logger=logger,
    )
    rows = data.pop("leaderboardRows")
    data.pop("relaxedFilter", None)
    data["podium"] = rows[:PODIUM_SIZE]
    data["rows"] = rows[PODIUM_SIZE:]
    return data
