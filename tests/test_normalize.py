from datetime import date, datetime

from utils.models import AgentRole, BattleType, MetricRule
from utils.normalize import (
    agent_from_doc,
    classify_role,
    formula_from_doc,
    index_by_id,
    metric_rule_from_doc,
    metric_rules_from_docs,
    parse_timestamp,
    record_from_doc,
    unit_from_doc,
)


def test_leader_roles_are_classified_once():
    for role in ("platoon", "Leader", "SQUAD", " team "):
        assert classify_role(role) is AgentRole.LEADER
    for role in ("agent", "", None):
        assert classify_role(role) is AgentRole.OTHER


def test_agent_from_doc_aliases():
    agent = agent_from_doc(
        {"_id": "a1", "name": "Alice", "role": "platoon", "depotId": "d1", "company_id": "c1", "photoURL": "a.png"}
    )

    assert agent.id == "a1"
    assert agent.is_leader
    assert agent.depot_id == "d1"
    assert agent.company_id == "c1"
    assert agent.platoon_id is None
    assert agent.photo_url == "a.png"


def test_unit_and_index():
    units = [unit_from_doc({"id": "d1", "name": "North", "photo_url": "n.png"}), unit_from_doc({"name": "No id"})]

    assert index_by_id(units) == {"d1": units[0]}


class TestParseTimestamp:
    def test_strings_and_dates(self):
        assert parse_timestamp("2026-10-05") == date(2026, 10, 5)
        assert parse_timestamp("2026-10-05T23:00:00Z") == date(2026, 10, 5)
        assert parse_timestamp(datetime(2026, 1, 2, 8, 30)) == date(2026, 1, 2)
        assert parse_timestamp("garbage") is None

    def test_timestamp_objects(self):
        # 2026-10-05T00:00:00Z
        assert parse_timestamp({"seconds": 1791158400, "nanoseconds": 0}) == date(2026, 10, 5)
        assert parse_timestamp({"_seconds": 1791158400}) == date(2026, 10, 5)
        assert parse_timestamp({"seconds": "soon"}) is None


class TestRecordFromDoc:
    def test_joins_agent_by_id(self):
        agents = {"a1": agent_from_doc({"id": "a1", "name": "Alice", "role": "leader"})}

        record = record_from_doc(
            {
                "_id": "r1",
                "agent_id": "a1",
                "date_real": "2026-10-05",
                "leads": "12",
                "payins": None,
                "sales": 500,
                "approved": True,
                "voided": "false",
                "leadsDepotId": "d3",
            },
            agents,
        )

        assert record.id == "r1"
        assert record.agent.name == "Alice"
        assert record.date == date(2026, 10, 5)
        assert (record.leads, record.payins, record.sales) == (12.0, 0.0, 500.0)
        assert record.approved is True
        # only a literal boolean true counts
        assert record.voided is False
        assert record.leads_depot_id == "d3"

    def test_embedded_agent_wins(self):
        record = record_from_doc({"id": "r2", "agentId": "a9", "agents": {"id": "a9", "name": "Embedded"}}, {})

        assert record.agent_id == "a9"
        assert record.agent.name == "Embedded"

    def test_missing_agent(self):
        record = record_from_doc({"id": "r3", "agent_id": "ghost"}, {})

        assert record.agent is None
        assert record.date is None


class TestMetricRules:
    def test_field_aliases(self):
        assert metric_rule_from_doc({"metric": "Sales", "division": "50000", "points": 400}) == MetricRule(
            "sales", 50000.0, 400.0
        )
        assert metric_rule_from_doc({"name": "leads", "divisor": 100, "max_points": 300}) == MetricRule(
            "leads", 100.0, 300.0
        )

    def test_unusable_entries_dropped(self):
        rules = metric_rules_from_docs([{"divisor": 1}, "leads", None, {"key": "payins", "divisor": 1, "maxPoints": 5}])

        assert rules == (MetricRule("payins", 1.0, 5.0),)


class TestFormulaFromDoc:
    def test_config_metrics(self):
        formula = formula_from_doc(
            {
                "_id": "f1",
                "battle_type": "depot",
                "status": "Published",
                "version": 4,
                "effective_start_week_key": "2026-W01",
                "config": {"metrics": [{"key": "leads", "divisor": 10, "maxPoints": 1000}]},
            },
            week_key="2026-W40",
        )

        assert formula.battle_type is BattleType.DEPOTS
        assert formula.is_published
        assert formula.version == 4
        assert formula.week_key == "2026-W40"
        assert formula.effective_end_week_key is None
        assert formula.total_points == 1000

    def test_nested_and_flat_metric_locations(self):
        nested = formula_from_doc({"battleType": "companies", "metrics": {"metrics": [{"key": "sales", "divisor": 1, "maxPoints": 1}]}})
        flat = formula_from_doc({"battle_type": "leaders", "config": [{"key": "leads", "divisor": 1, "maxPoints": 1}]})

        assert [r.key for r in nested.metrics] == ["sales"]
        assert [r.key for r in flat.metrics] == ["leads"]

    def test_empty_doc(self):
        assert formula_from_doc(None) is None
        assert formula_from_doc({}) is None
