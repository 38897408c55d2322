from __future__ import annotations

import logging
import os
from datetime import date, datetime, timezone

import azure.functions as func

from utils.dashboard import get_public_summary
from utils.db_utils import ensure_indexes, get_db
from utils.models import BattleType
from utils.periods import is_week_key, iso_week_key, to_ymd, week_bounds
from utils.scoring_engine import normalize_battle_type

SNAPSHOT_COLLECTION = "Public_Leaderboard"


def _resolve_target_week(now: datetime | None = None) -> str:
    """
    Determine which ISO week to snapshot.
    Priority: explicit env override -> current UTC week.
    """
    override = os.getenv("BOP_LEADERBOARD_WEEK") or os.getenv("LEADERBOARD_WEEK")
    if override:
        if not is_week_key(override):
            raise ValueError(f"BOP_LEADERBOARD_WEEK must be YYYY-Www, got {override!r}")
        return override
    now = now or datetime.now(timezone.utc)
    return iso_week_key(now.date())


def snapshot_window(week_key: str, today: date | None = None) -> tuple[str, str]:
    """Monday of the week through Sunday, or through today while the week is running."""
    monday, sunday = week_bounds(week_key)
    today = today or datetime.now(timezone.utc).date()
    end = min(sunday, today) if today >= monday else sunday
    return to_ymd(monday), to_ymd(end)


# ---------- Runner ----------
def run(week_key: str, db=None, battle_types=None, today: date | None = None) -> dict[str, int]:
    """Write one published-leaderboard snapshot per battle type for `week_key`.

    Returns the number of ranked rows written per battle type.
    """
    db = db if db is not None else get_db()
    ensure_indexes(db)

    start, end = snapshot_window(week_key, today)
    logging.info("[Leaderboard] Snapshot week=%s (start=%s, end=%s)", week_key, start, end)

    written: dict[str, int] = {}
    for battle_type in [normalize_battle_type(b) for b in battle_types or BattleType]:
        summary = get_public_summary(db, battle_type, start, end)
        rows = summary["podium"] + summary["rows"]

        doc = {
            "_id": f"{battle_type.value}_{week_key}",
            "battle_type": battle_type.value,
            "week_key": week_key,
            "date_from": start,
            "date_to": end,
            "formula": summary["formula"],
            "kpis": summary["kpis"],
            "rows": rows,
            "updatedAt": datetime.now(timezone.utc),
        }
        db[SNAPSHOT_COLLECTION].replace_one({"_id": doc["_id"]}, doc, upsert=True)
        written[battle_type.value] = len(rows)

        if summary["formula"] is None:
            logging.warning(
                "[Leaderboard] No active formula for %s in %s; snapshot ranks by tie-breaks only",
                battle_type.value,
                week_key,
            )
        logging.info("[Leaderboard] %s: %d rows written", battle_type.value, len(rows))

    return written


def main(mytimer: func.TimerRequest) -> None:
    """Azure Functions timer entrypoint."""
    trigger_time = datetime.now(timezone.utc).isoformat()
    logging.info("[Leaderboard] Timer fired at %s", trigger_time)
    if getattr(mytimer, "past_due", False):
        logging.warning("[Leaderboard] Timer is running past due.")

    week_key = _resolve_target_week()
    logging.info("[Leaderboard] Target week resolved as %s", week_key)

    try:
        run(week_key)
    except Exception:
        logging.exception("[Leaderboard] Snapshot failed for week_key=%s", week_key)
        raise

    logging.info("[Leaderboard] Completed snapshots for week_key=%s", week_key)


if __name__ == "__main__":
    # Example:
    #   export MONGODB_CONNECTION_STRING="mongodb+srv://..."
    #   python -m Leaderboard

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    target = _resolve_target_week()
    counts = run(target)
    print(f"Done for {target}: {counts}")
