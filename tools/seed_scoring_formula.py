import argparse
import datetime
import json
import logging
import os
import sys
from datetime import timezone

import pymongo
from dotenv import load_dotenv

# Add parent directory to path to allow importing utils
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from utils.formulas import normalize_formula_metrics, validate_formula  # noqa: E402

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

# Default formulas; caps sum to 1000 per battle type
DEFAULT_FORMULAS = {
    "leaders": [
        {"key": "leads", "divisor": 100, "maxPoints": 300},
        {"key": "payins", "divisor": 50, "maxPoints": 300},
        {"key": "sales", "divisor": 50000, "maxPoints": 400},
    ],
    "depots": [
        {"key": "leads", "divisor": 500, "maxPoints": 400},
        {"key": "sales", "divisor": 250000, "maxPoints": 600},
    ],
    "companies": [
        {"key": "leads", "divisor": 2000, "maxPoints": 300},
        {"key": "payins", "divisor": 1000, "maxPoints": 300},
        {"key": "sales", "divisor": 1000000, "maxPoints": 400},
    ],
}


def load_settings():
    try:
        with open("local.settings.json", "r") as f:
            data = json.load(f)
            return data.get("Values", {})
    except FileNotFoundError:
        return {}


def get_db():
    load_dotenv()
    settings = load_settings()
    uri = os.getenv("MONGODB_CONNECTION_STRING") or settings.get("MONGODB_CONNECTION_STRING")
    db_name = os.getenv("BOP_DB_NAME") or settings.get("BOP_DB_NAME") or "Battle_Of_Platoons_v2"

    if not uri:
        logging.error("MONGODB_CONNECTION_STRING env var not set and not found in local.settings.json")
        sys.exit(1)

    client = pymongo.MongoClient(uri)
    logging.info(f"Connected to DB: {db_name}")
    return client[db_name]


def build_formula_doc(battle_type: str, start_week_key: str, publish: bool) -> dict:
    metrics = DEFAULT_FORMULAS[battle_type]
    errors = validate_formula(battle_type, metrics, start_week_key)
    if errors:
        raise ValueError(f"Default {battle_type} formula is invalid: {errors}")

    now = datetime.datetime.now(timezone.utc)
    return {
        "_id": f"default_{battle_type}_{start_week_key}",
        "battle_type": battle_type,
        "name": f"Default {battle_type.capitalize()} Formula",
        "status": "published" if publish else "draft",
        "version": 1,
        "effective_start_week_key": start_week_key,
        "effective_end_week_key": None,
        "config": {"metrics": [r.to_dict() for r in normalize_formula_metrics(battle_type, metrics)]},
        "createdAt": now,
        "updatedAt": now,
        "audit": {"events": [{"action": "SEEDED", "by": "seed_scoring_formula", "at": now.isoformat(), "reason": "Initial seed"}]},
    }


def seed(db, start_week_key: str, publish: bool):
    coll = db["scoring_formulas"]
    for battle_type in DEFAULT_FORMULAS:
        doc = build_formula_doc(battle_type, start_week_key, publish)
        coll.replace_one({"_id": doc["_id"]}, doc, upsert=True)
        logging.info(f"Seeded {doc['_id']} ({doc['status']})")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed default scoring formulas")
    parser.add_argument("--start-week", required=True, help="First ISO week the formulas apply to, e.g. 2026-W01")
    parser.add_argument("--draft", action="store_true", help="Seed as drafts instead of published")
    args = parser.parse_args()

    seed(get_db(), args.start_week, publish=not args.draft)
    logging.info("Scoring formulas seeded.")
