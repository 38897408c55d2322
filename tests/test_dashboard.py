"""
Data source queries and the dashboard / public summary assembly.
"""

import logging

import pytest

from conftest import make_db
from utils.dashboard import get_dashboard_data, get_public_summary
from utils.data_source import active_formula_query, fetch_active_formula, fetch_records, raw_rows_query
from utils.models import AggregationMode

AGENTS = [
    {"_id": "a1", "name": "Alice", "role": "platoon", "depot_id": "d1", "company_id": "c1"},
    {"_id": "a2", "name": "Bob", "role": "leader", "depot_id": "d2", "company_id": "c1"},
    {"_id": "a3", "name": "Cara", "role": "agent", "depot_id": "d2", "company_id": "c2"},
]
DEPOTS = [{"_id": "d1", "name": "North"}, {"_id": "d2", "name": "South"}]
COMPANIES = [{"_id": "c1", "name": "Acme", "photoURL": "acme.png"}]
FORMULA = {
    "_id": "f1",
    "battle_type": "leaders",
    "status": "published",
    "version": 1,
    "config": {
        "metrics": [
            {"key": "leads", "divisor": 100, "maxPoints": 400},
            {"key": "sales", "divisor": 50000, "maxPoints": 600},
        ]
    },
}


def row(id_, agent_id, leads=0, sales=0, payins=0, **flags):
    doc = {
        "_id": id_,
        "agent_id": agent_id,
        "date_real": "2026-10-05",
        "leads": leads,
        "payins": payins,
        "sales": sales,
        "approved": True,
        "voided": False,
        "published": True,
    }
    doc.update(flags)
    return doc


class TestQueries:
    def test_strict_raw_rows_query(self):
        assert raw_rows_query("2026-10-01", "2026-10-17") == {
            "date_real": {"$gte": "2026-10-01", "$lte": "2026-10-17"},
            "approved": True,
            "voided": {"$ne": True},
        }

    def test_published_query(self):
        query = raw_rows_query("2026-10-01", "2026-10-17", require_approved=False, require_published=True)

        assert query["published"] is True
        assert "approved" not in query

    def test_active_formula_query_window(self):
        query = active_formula_query("depot", "2026-W42")

        assert query["battle_type"] == "depots"
        assert query["status"] == "published"
        assert {"effective_start_week_key": {"$lte": "2026-W42"}} in query["$and"][0]["$or"]
        assert {"effective_end_week_key": {"$gte": "2026-W42"}} in query["$and"][1]["$or"]

    def test_fetch_active_formula(self):
        db = make_db(formulas=[FORMULA])

        formula = fetch_active_formula(db, "leaders", "2026-W41")

        assert formula.id == "f1"
        assert formula.week_key == "2026-W41"
        assert fetch_active_formula(db, "leaders", None) is None

    def test_no_active_formula(self):
        assert fetch_active_formula(make_db(), "leaders", "2026-W41") is None


class TestFetchRecords:
    def test_strict_query_does_not_relax_by_default(self):
        db = make_db(agents=AGENTS)

        records, relaxed = fetch_records(db, "2026-10-01", "2026-10-17")

        assert records == []
        assert relaxed is None
        assert db.raw_data.find.call_count == 1

    def test_relaxed_cascade_stops_at_first_hit(self):
        db = make_db(agents=AGENTS)
        db.raw_data.find.side_effect = [
            [],
            [],
            [row("r1", "a1", leads=3, approved=None), row("r2", "a1", leads=9, approved=False)],
        ]

        records, relaxed = fetch_records(db, "2026-10-01", "2026-10-17", relax_filters=True)

        assert relaxed == "approved"
        assert [r.id for r in records] == ["r1"]
        assert db.raw_data.find.call_count == 3

    def test_relaxed_date_filter_still_clips_window(self):
        db = make_db(agents=AGENTS)
        db.raw_data.find.side_effect = [
            [],
            [row("in", "a1"), row("out", "a1", date_real="2026-08-01")],
        ]

        records, relaxed = fetch_records(db, "2026-10-01", "2026-10-17", relax_filters=True)

        assert relaxed == "date"
        assert [r.id for r in records] == ["in"]

    def test_records_joined_to_agents(self):
        db = make_db(agents=AGENTS, raw_rows=[row("r1", "a2", leads=1)])

        records, _ = fetch_records(db, "2026-10-01", "2026-10-17", mode=AggregationMode.PUBLISHED)

        assert records[0].agent.name == "Bob"
        query = db.raw_data.find.call_args.args[0]
        assert query["published"] is True


class TestDashboardData:
    def test_leaders_dashboard(self):
        db = make_db(
            agents=AGENTS,
            depots=DEPOTS,
            companies=COMPANIES,
            formulas=[FORMULA],
            raw_rows=[
                row("r1", "a1", leads=10, sales=0),
                row("r2", "a1", leads=5, sales=0),
                row("r3", "a2", leads=50, sales=25000),
                row("r4", "a3", leads=500, sales=900000),
                row("r5", "a2", leads=1000, sales=1000, voided=True),
            ],
        )

        data = get_dashboard_data(db, "leaders", "2026-10-01", "2026-10-17")

        assert data["battleType"] == "leaders"
        assert data["weekKey"] == "2026-W42"
        assert data["formula"]["id"] == "f1"
        assert data["relaxedFilter"] is None
        assert data["kpis"] == {
            "leadersCount": 2,
            "companiesCount": 1,
            "depotsCount": 2,
            "totalLeads": 565,
            "totalSales": 925000,
        }
        rows = data["leaderboardRows"]
        assert [(r["key"], r["rank"], r["points"]) for r in rows] == [("a2", 1, 500), ("a1", 2, 60)]
        assert rows[1]["leads"] == 15

    def test_depots_use_directory_names_and_skip_payins(self):
        db = make_db(
            agents=AGENTS,
            depots=DEPOTS,
            raw_rows=[row("r1", "a1", leads=5, payins=100), row("r2", "a3", leads=7, leads_depot_id="d9")],
        )

        data = get_dashboard_data(db, "depots", "2026-10-01", "2026-10-17")

        names = {r["key"]: r["name"] for r in data["leaderboardRows"]}
        assert names == {"d1": "North", "d9": "Unknown Depot"}
        assert data["formula"] is None

    def test_missing_formula_logs_warning(self, caplog):
        db = make_db(agents=AGENTS)

        with caplog.at_level(logging.WARNING):
            get_dashboard_data(db, "companies", "2026-10-01", "2026-10-17")

        assert "No active scoring formula" in caplog.text

    def test_relaxed_approval_keeps_unreviewed_rows_only(self):
        db = make_db(agents=AGENTS)
        db.raw_data.find.side_effect = [
            [],
            [],
            [row("r1", "a1", leads=3, approved=None), row("r2", "a1", leads=40, approved=False)],
        ]

        data = get_dashboard_data(db, "leaders", "2026-10-01", "2026-10-17", relax_filters=True)

        assert data["relaxedFilter"] == "approved"
        assert data["kpis"]["totalLeads"] == 3
        assert [r["key"] for r in data["leaderboardRows"]] == ["a1"]

    @pytest.mark.parametrize("view", ["depot", "company"])
    def test_battle_type_aliases(self, view):
        data = get_dashboard_data(make_db(), view, "2026-10-01", "2026-10-17")

        assert data["battleType"] in ("depots", "companies")


def test_public_summary_splits_podium():
    agents = [{"_id": f"a{i}", "name": f"Leader {i}", "role": "leader"} for i in range(5)]
    raw_rows = [row(f"r{i}", f"a{i}", sales=1000 * (i + 1)) for i in range(5)]
    raw_rows.append(row("r-unpublished", "a0", sales=10**6, published=False))
    db = make_db(agents=agents, raw_rows=raw_rows)

    summary = get_public_summary(db, "leaders", "2026-10-01", "2026-10-17")

    assert [r["key"] for r in summary["podium"]] == ["a4", "a3", "a2"]
    assert [r["rank"] for r in summary["rows"]] == [4, 5]
    assert "leaderboardRows" not in summary
    assert "relaxedFilter" not in summary
    # the raw_data query itself asks for published rows
    assert db.raw_data.find.call_args.args[0]["published"] is True
