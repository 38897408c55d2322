import logging

import azure.functions as func

from utils import formula_store, rbac
from utils.data_source import fetch_active_formula
from utils.db_utils import get_db
from utils.errors import BattleError, FormulaNotFoundError, FormulaValidationError
from utils.formulas import REQUIRED_TOTAL_POINTS, allowed_metric_keys, preview_formula
from utils.http import error_response, options_response, read_json, respond
from utils.periods import default_date_range, is_week_key, iso_week_key
from utils.scoring_engine import normalize_battle_type


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info("Formulas_API processed a request.")

    if req.method == "OPTIONS":
        return options_response()

    # Route format: "formulas/{*route}"
    parts = [p for p in (req.route_params.get("route") or "").split("/") if p]
    method = req.method.upper()

    try:
        if not parts and method == "GET":
            return list_formulas(req)
        if parts == ["active"] and method == "GET":
            return get_active(req)
        if parts == ["preview"] and method == "POST":
            return preview(req)
        if len(parts) == 1 and method == "GET":
            return get_formula(req, parts[0])
        if len(parts) == 1 and method == "PUT":
            return update_draft(req, parts[0])
        if len(parts) == 2 and parts[1] == "publish" and method == "POST":
            return publish(req, parts[0])
    except FormulaValidationError as e:
        return error_response(e.user_message, status=400, errors=e.errors)
    except BattleError as e:
        logging.warning(f"Formulas_API rejected request: {e}")
        return error_response(e.user_message, status=e.status_code)
    except Exception as e:
        logging.error(f"Error in Formulas_API: {e}", exc_info=True)
        return error_response("Internal Server Error", status=500)

    return error_response("Not Found", status=404)


def list_formulas(req):
    # Super admins also see drafts; everyone else only published formulas
    email = rbac.get_user_email(req)
    include_drafts = rbac.is_super_admin(email)
    formulas = formula_store.list_formulas(get_db(), include_drafts=include_drafts)
    return respond({
        "formulas": [f.to_dict() for f in formulas],
        "requiredTotalPoints": REQUIRED_TOTAL_POINTS,
    })


def get_active(req):
    battle_type = normalize_battle_type(req.params.get("battleType"))
    week_key = req.params.get("weekKey")
    if week_key and not is_week_key(week_key):
        return error_response("weekKey must be YYYY-Www", status=400)
    if not week_key:
        _, today = default_date_range()
        week_key = iso_week_key(today)

    formula = fetch_active_formula(get_db(), battle_type, week_key)
    if formula is None:
        return error_response(
            f"No active formula for {battle_type.value} in {week_key}",
            status=404,
        )
    return respond(formula.to_dict())


def get_formula(req, formula_id):
    formula = formula_store.get_formula(get_db(), formula_id)
    # Drafts are only visible to super admins, same as the list
    if not formula.is_published and not rbac.is_super_admin(rbac.get_user_email(req)):
        raise FormulaNotFoundError(formula_id)
    data = formula.to_dict()
    data["allowedMetricKeys"] = allowed_metric_keys(formula.battle_type)
    return respond(data)


def _require_super_admin(req):
    email = rbac.get_user_email(req)
    if not rbac.is_super_admin(email):
        return None, error_response("Forbidden: Super Admins only", status=403)
    return email, None


def update_draft(req, formula_id):
    email, denied = _require_super_admin(req)
    if denied:
        return denied

    try:
        body = read_json(req)
    except ValueError:
        return error_response("Invalid JSON", status=400)

    metrics = body.get("metrics")
    if isinstance(metrics, dict):
        metrics = metrics.get("metrics")
    if not isinstance(metrics, list):
        return error_response("'metrics' must be a list", status=400)

    formula = formula_store.update_draft(
        get_db(),
        formula_id,
        metrics=metrics,
        reason=body.get("reason"),
        name=body.get("name"),
        start_week_key=body.get("effectiveStartWeekKey"),
        end_week_key=body.get("effectiveEndWeekKey"),
        updated_by=email,
    )
    return respond(formula.to_dict())


def publish(req, formula_id):
    email, denied = _require_super_admin(req)
    if denied:
        return denied

    try:
        body = read_json(req)
    except ValueError:
        return error_response("Invalid JSON", status=400)

    formula = formula_store.publish(get_db(), formula_id, reason=body.get("reason"), published_by=email)
    return respond(formula.to_dict())


def preview(req):
    try:
        body = read_json(req)
    except ValueError:
        return error_response("Invalid JSON", status=400)

    metrics = body.get("metrics")
    if not isinstance(metrics, list):
        return error_response("'metrics' must be a list", status=400)

    totals = body.get("totals")
    if totals is not None and not isinstance(totals, dict):
        return error_response("'totals' must be an object", status=400)

    return respond(preview_formula(body.get("battleType"), metrics, totals))
