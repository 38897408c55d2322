import logging

import pymongo
from bson import ObjectId
from bson.errors import InvalidId
from pymongo.errors import PyMongoError

from .settings import assert_safe_db, get_connection_string

# Global cache for the MongoDB client to enable connection pooling across invocations
_CLIENT_CACHE = None


def get_db_client(**kwargs):
    """
    Returns a PyMongo client using the connection string from env / Key Vault.
    Uses a global cache to reuse the client across Azure Function invocations.
    """
    global _CLIENT_CACHE

    if _CLIENT_CACHE is not None:
        return _CLIENT_CACHE

    uri = get_connection_string()
    try:
        client = pymongo.MongoClient(uri, **kwargs)
    except Exception as e:
        logging.critical(f"Failed to create MongoClient: {e}")
        raise

    _CLIENT_CACHE = client
    return client


def get_db(db_name=None):
    """
    Returns the database object. Refuses the production DB outside APP_ENV=prod.
    """
    client = get_db_client()
    return client[assert_safe_db(db_name)]


def id_filter(doc_id: str) -> dict:
    """`_id` match for a path id; seeded documents use string ids, app-created ones ObjectIds."""
    try:
        return {"_id": {"$in": [doc_id, ObjectId(doc_id)]}}
    except (InvalidId, TypeError):
        return {"_id": doc_id}


def ensure_indexes(db):
    """Helpful indexes for the dashboard queries (idempotent)."""
    for coll, spec, unique in [
        ("raw_data", [("date_real", 1)], False),
        ("raw_data", [("agent_id", 1), ("date_real", 1)], False),
        ("scoring_formulas", [("battle_type", 1), ("status", 1)], False),
        ("Public_Leaderboard", [("battle_type", 1), ("week_key", 1)], True),
    ]:
        try:
            db[coll].create_index(spec, unique=unique)
        except PyMongoError as e:
            logging.warning("[db] Could not create index %s on %s: %s", spec, coll, e)
