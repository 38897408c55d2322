#!/usr/bin/env python3
"""
Export the ranked leaderboard of every battle type to CSV.

    python tools/export_rankings.py --from 2026-10-01 --to 2026-10-17 --out exports/
"""
import argparse
import logging
import os
import sys

import pandas as pd
from dotenv import load_dotenv

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from utils.dashboard import get_dashboard_data  # noqa: E402
from utils.models import AggregationMode, BattleType  # noqa: E402

COLUMNS = ["rank", "key", "name", "leads", "payins", "sales", "points"]


def rankings_frame(data: dict) -> pd.DataFrame:
    df = pd.DataFrame(data["leaderboardRows"], columns=COLUMNS)
    df.insert(0, "battle_type", data["battleType"])
    df["week_key"] = data["weekKey"]
    return df


def export(db, date_from, date_to, out_dir, mode=AggregationMode.OFFICIAL):
    os.makedirs(out_dir, exist_ok=True)
    frames = []
    for battle_type in BattleType:
        data = get_dashboard_data(db, battle_type, date_from, date_to, aggregation_mode=mode)
        df = rankings_frame(data)
        path = os.path.join(out_dir, f"rankings_{battle_type.value}_{data['dateFrom']}_{data['dateTo']}.csv")
        df.to_csv(path, index=False)
        logging.info("Wrote %d rows to %s", len(df), path)
        frames.append(df)
    return pd.concat(frames, ignore_index=True) if frames else pd.DataFrame(columns=COLUMNS)


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")

    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--from", dest="date_from", help="YYYY-MM-DD (default: first of this month)")
    parser.add_argument("--to", dest="date_to", help="YYYY-MM-DD (default: today)")
    parser.add_argument("--out", default="exports", help="Output directory")
    parser.add_argument("--published", action="store_true", help="Rank published rows (public view) instead of approved rows")
    args = parser.parse_args()

    from utils.db_utils import get_db

    mode = AggregationMode.PUBLISHED if args.published else AggregationMode.OFFICIAL
    combined = export(get_db(), args.date_from, args.date_to, args.out, mode=mode)
    print(combined.groupby("battle_type").size().to_string())
