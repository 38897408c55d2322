import logging
import os

from pymongo.errors import PyMongoError

from .db_utils import get_db

SUPER_ADMIN = "super_admin"
ADMIN = "admin"
COMPANY_ADMIN = "company_admin"
DEPOT_ADMIN = "depot_admin"

# Roles allowed to void raw rows; publishing stays with super admins
VOID_ROLES = (SUPER_ADMIN, COMPANY_ADMIN, DEPOT_ADMIN)


def get_allowed_emails(env_var_name: str) -> set[str]:
    raw = os.getenv(env_var_name, "")
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


def get_profile_role(email: str) -> str | None:
    """Role stored on the user's profile document, if any."""
    if not email:
        return None
    try:
        profile = get_db().profiles.find_one({"email": email.lower()}, {"role": 1})
    except PyMongoError as e:
        logging.error(f"RBAC DB check failed: {e}")
        return None
    if not profile:
        return None
    return profile.get("role")


def is_super_admin(email: str) -> bool:
    if not email:
        return False
    email = email.lower()

    # Check Env
    if email in get_allowed_emails("BOP_SUPER_ADMIN_EMAILS"):
        return True

    # Check DB
    return get_profile_role(email) == SUPER_ADMIN


def is_admin(email: str) -> bool:
    if not email:
        return False
    email = email.lower()

    if email in get_allowed_emails("BOP_ADMIN_EMAILS") or email in get_allowed_emails("BOP_SUPER_ADMIN_EMAILS"):
        return True

    return get_profile_role(email) in (ADMIN, SUPER_ADMIN)


def can_void(email: str) -> bool:
    if not email:
        return False
    email = email.lower()

    if email in get_allowed_emails("BOP_ADMIN_EMAILS") or email in get_allowed_emails("BOP_SUPER_ADMIN_EMAILS"):
        return True

    return get_profile_role(email) in VOID_ROLES


def get_user_email(req) -> str | None:
    # 1. Try x-ms-client-principal-name (Azure App Service Auth) - ALWAYS honored
    val = req.headers.get("x-ms-client-principal-name")
    if val:
        return val

    # 2. Dev/Test-only: Allow X-User-Email (for E2E tests, local development)
    # In Production, ignore X-User-Email to prevent spoofing
    is_dev_or_test = (
        os.getenv("AZURE_FUNCTIONS_ENVIRONMENT") != "Production"
        or os.getenv("DEBUG_RBAC") == "1"
    )

    if is_dev_or_test:
        val = req.headers.get("X-User-Email")
        if val:
            return val

    return None
