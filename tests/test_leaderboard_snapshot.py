from datetime import date, datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

import Leaderboard
from conftest import make_db
from utils.models import BattleType

AGENTS = [
    {"_id": "a1", "name": "Alice", "role": "leader", "depot_id": "d1", "company_id": "c1"},
    {"_id": "a2", "name": "Bob", "role": "leader", "depot_id": "d1", "company_id": "c1"},
]
RAW_ROWS = [
    {"_id": "r1", "agent_id": "a1", "date_real": "2026-10-13", "sales": 500, "published": True, "approved": True},
    {"_id": "r2", "agent_id": "a2", "date_real": "2026-10-14", "sales": 900, "published": True, "approved": True},
]


def test_resolve_target_week_override(monkeypatch):
    monkeypatch.setenv("BOP_LEADERBOARD_WEEK", "2026-W40")

    assert Leaderboard._resolve_target_week() == "2026-W40"


def test_resolve_target_week_rejects_bad_override(monkeypatch):
    monkeypatch.setenv("LEADERBOARD_WEEK", "week 40")

    with pytest.raises(ValueError):
        Leaderboard._resolve_target_week()


def test_resolve_target_week_defaults_to_current():
    now = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)

    assert Leaderboard._resolve_target_week(now) == "2026-W42"


def test_snapshot_window_clips_running_week():
    assert Leaderboard.snapshot_window("2026-W42", today=date(2026, 10, 14)) == ("2026-10-12", "2026-10-14")
    assert Leaderboard.snapshot_window("2026-W41", today=date(2026, 10, 14)) == ("2026-10-05", "2026-10-11")


def test_run_writes_one_snapshot_per_battle_type():
    db = make_db(agents=AGENTS, raw_rows=RAW_ROWS)
    snapshots = db[Leaderboard.SNAPSHOT_COLLECTION]

    counts = Leaderboard.run("2026-W42", db=db, today=date(2026, 10, 17))

    assert counts == {"leaders": 2, "depots": 1, "companies": 1}
    assert snapshots.replace_one.call_count == 3

    filter_, doc = snapshots.replace_one.call_args_list[0].args
    assert filter_ == {"_id": "leaders_2026-W42"}
    assert doc["date_from"] == "2026-10-12"
    assert doc["date_to"] == "2026-10-17"
    assert [r["key"] for r in doc["rows"]] == ["a2", "a1"]
    assert snapshots.replace_one.call_args_list[0].kwargs == {"upsert": True}


def test_run_subset_of_battle_types():
    db = make_db(agents=AGENTS, raw_rows=RAW_ROWS)

    counts = Leaderboard.run("2026-W42", db=db, battle_types=[BattleType.DEPOTS], today=date(2026, 10, 17))

    assert counts == {"depots": 1}


@pytest.mark.parametrize("names", [["leaders"], ["leader"], ["Leaders"]])
def test_run_accepts_battle_type_names(names):
    db = make_db(agents=AGENTS, raw_rows=RAW_ROWS)

    counts = Leaderboard.run("2026-W42", db=db, battle_types=names, today=date(2026, 10, 17))

    assert counts == {"leaders": 2}
    filter_, _ = db[Leaderboard.SNAPSHOT_COLLECTION].replace_one.call_args.args
    assert filter_ == {"_id": "leaders_2026-W42"}


def test_timer_entrypoint_propagates_failures():
    timer = MagicMock(past_due=True)

    with patch("Leaderboard.run", side_effect=RuntimeError("db down")) as run:
        with pytest.raises(RuntimeError):
            Leaderboard.main(timer)

    run.assert_called_once()
