import argparse
import logging
import os
import sys

import requests
from dotenv import load_dotenv

# Add parent directory to path to allow importing Leaderboard module
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

load_dotenv()

logging.basicConfig(level=logging.INFO)

FUNCTIONS_HOST = os.getenv("FUNCTIONS_HOST", "http://localhost:7071")


def trigger_remote(week_key: str | None):
    """Ask a running Functions host to fire the Leaderboard timer (admin endpoint)."""
    url = f"{FUNCTIONS_HOST}/admin/functions/Leaderboard"
    headers = {"Content-Type": "application/json"}
    master_key = os.getenv("FUNCTIONS_MASTER_KEY")
    if master_key:
        headers["x-functions-key"] = master_key
    if week_key:
        logging.warning("Remote trigger ignores --week; set BOP_LEADERBOARD_WEEK on the host instead")

    resp = requests.post(url, json={"input": ""}, headers=headers, timeout=30)
    resp.raise_for_status()
    print(f"Leaderboard timer triggered on {FUNCTIONS_HOST} (HTTP {resp.status_code})")


def trigger_local(week_key: str | None):
    from Leaderboard import _resolve_target_week, run

    target = week_key or _resolve_target_week()
    print(f"Triggering leaderboard snapshot for {target} on {os.environ.get('BOP_DB_NAME', 'Battle_Of_Platoons_v2')}...")
    counts = run(target)
    print(f"Snapshot complete: {counts}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the weekly leaderboard snapshot")
    parser.add_argument("--week", help="ISO week key, e.g. 2026-W42 (local runs only)")
    parser.add_argument("--remote", action="store_true", help="Trigger through the local Functions host")
    args = parser.parse_args()

    if args.remote:
        trigger_remote(args.week)
    else:
        trigger_local(args.week)
