"""
Shared fixtures for the Battle of Platoons tests.

Nothing here talks to MongoDB: database handles are MagicMocks and the
HTTP functions are driven with azure.functions.HttpRequest objects.
"""

import json
import os
import sys
from unittest.mock import MagicMock

import azure.functions as func
import pytest

# Add repo root so `utils` and the function folders import like the Functions host sees them
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from utils.models import Agent, AgentRole, MetricRule, RawPerformanceRecord, ScoringFormula, BattleType  # noqa: E402

ENV_VARS = (
    "BOP_DASHBOARD_RELAXED_FILTERS",
    "BOP_DASHBOARD_DEBUG",
    "BOP_SUPER_ADMIN_EMAILS",
    "BOP_ADMIN_EMAILS",
    "BOP_LEADERBOARD_WEEK",
    "LEADERBOARD_WEEK",
    "DEBUG_RBAC",
    "AZURE_FUNCTIONS_ENVIRONMENT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Tests start without feature flags or admin lists from the developer's shell."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def leader():
    return Agent(id="a1", name="Alice", role=AgentRole.LEADER, depot_id="d1", company_id="c1")


@pytest.fixture
def member():
    return Agent(id="a2", name="Bob", role=AgentRole.OTHER, depot_id="d2", company_id="c1")


@pytest.fixture
def make_record(leader):
    """Factory for approved, non-voided records of the leader agent."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        fields = {
            "id": f"r{counter['n']}",
            "agent_id": leader.id,
            "leads": 0,
            "payins": 0,
            "sales": 0,
            "approved": True,
            "voided": False,
            "published": True,
            "agent": leader,
        }
        fields.update(overrides)
        return RawPerformanceRecord(**fields)

    return _make


@pytest.fixture
def leaders_formula():
    return ScoringFormula(
        battle_type=BattleType.LEADERS,
        metrics=(
            MetricRule("leads", 100, 300),
            MetricRule("payins", 50, 300),
            MetricRule("sales", 50000, 400),
        ),
        id="f-leaders",
        status="published",
        version=3,
    )


def make_request(method="GET", url="/api/test", *, params=None, route=None, headers=None, body=None):
    """HttpRequest the way the Functions host would hand it to main()."""
    if body is not None and not isinstance(body, bytes):
        body = json.dumps(body).encode("utf-8")
    return func.HttpRequest(
        method=method,
        url=url,
        headers=headers or {},
        params=params or {},
        route_params={"route": route} if route is not None else {},
        body=body or b"",
    )


def response_json(resp):
    return json.loads(resp.get_body().decode("utf-8"))


def make_db(*, agents=(), depots=(), companies=(), raw_rows=(), formulas=()):
    """MagicMock database answering the queries the dashboard issues."""
    db = MagicMock()
    db.agents.find.return_value.sort.return_value = list(agents)
    db.depots.find.return_value.sort.return_value = list(depots)
    db.companies.find.return_value.sort.return_value = list(companies)
    db.scoring_formulas.find.return_value.sort.return_value.limit.return_value = list(formulas)
    db.raw_data.find.return_value = list(raw_rows)
    return db
