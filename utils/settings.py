from __future__ import annotations

import logging
import os

from azure.identity import DefaultAzureCredential
from azure.keyvault.secrets import SecretClient

from .errors import ConfigurationError

# Simple in-process cache for secrets
_SECRET_CACHE: dict[str, str] = {}

# Key Vault URL can be configured via env; empty disables the lookup
KEY_VAULT_URL = os.getenv("KEY_VAULT_URL", "")

APP_ENV = os.getenv("APP_ENV", "dev")

PROD_DB_NAME = "Battle_Of_Platoons"
TEST_DB_NAME = "Battle_Of_Platoons_v2"

# Database name:
# Prefer explicit env overrides so every function shares the same DB:
#   - BOP_DB_NAME (primary)
#   - DB_NAME (generic)
DB_NAME = os.getenv("BOP_DB_NAME") or os.getenv("DB_NAME") or TEST_DB_NAME

# Connection string keys, checked in order
CONNECTION_STRING_KEYS = [
    "MONGODB_CONNECTION_STRING",
    "MongoDb-Connection-String",
    "CUSTOMCONNSTR_MongoDb-Connection-String",
    "DB_CONNECTION_STRING",
]


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def get_secret(name: str, default: str | None = None) -> str | None:
    """
    Return secret value from environment if present; otherwise fetch from Azure Key Vault.
    Falls back to `default` if neither source is available. Values are cached per-process.
    Supports KV names that disallow underscores by trying hyphenated variants.
    """
    # 1) Env precedence (easy local override for dev/testing)
    if os.environ.get(name):
        return os.environ[name]

    # 2) Cache
    if name in _SECRET_CACHE:
        return _SECRET_CACHE[name]

    # 3) Azure Key Vault (if configured)
    if KEY_VAULT_URL:
        lookup_names = [name]
        # Azure KV secret names cannot contain underscores; try a hyphenated variant
        if "_" in name:
            lookup_names.append(name.replace("_", "-"))
        try:
            client = SecretClient(vault_url=KEY_VAULT_URL, credential=DefaultAzureCredential())
            for kv_name in lookup_names:
                try:
                    secret = client.get_secret(kv_name)
                except Exception as e:
                    logging.debug("Secrets: '%s' not found in Key Vault: %s", kv_name, e)
                    continue
                if isinstance(secret.value, str):
                    _SECRET_CACHE[name] = secret.value
                    return secret.value
        except Exception as e:
            logging.warning("Secrets: failed to fetch '%s' from Key Vault: %s", name, e)

    # 4) Fallback
    return default


def get_connection_string() -> str:
    for key in CONNECTION_STRING_KEYS:
        val = get_secret(key)
        if val:
            return val

    # Never fall back to localhost:27017
    raise ConfigurationError(
        f"MongoDB connection string not found. Checked: {CONNECTION_STRING_KEYS}"
    )


def assert_safe_db(db_name: str | None = None, app_env: str | None = None) -> str:
    """Refuse to point non-prod code at the production database."""
    db_name = db_name or DB_NAME
    app_env = app_env or APP_ENV
    if app_env != "prod" and db_name == PROD_DB_NAME:
        logging.error(
            "SAFETY GUARD TRIGGERED: APP_ENV=%s but DB_NAME=%s (production).", app_env, db_name
        )
        raise ConfigurationError(
            f"Safety guard: cannot use production DB in non-prod environment. Set DB_NAME={TEST_DB_NAME}"
        )
    return db_name


def relaxed_filters_enabled() -> bool:
    return env_flag("BOP_DASHBOARD_RELAXED_FILTERS")


def get_dashboard_logger() -> logging.Logger:
    """Logger for dashboard diagnostics; BOP_DASHBOARD_DEBUG=1 turns on debug output."""
    logger = logging.getLogger("bop.dashboard")
    logger.setLevel(logging.DEBUG if env_flag("BOP_DASHBOARD_DEBUG") else logging.INFO)
    return logger
