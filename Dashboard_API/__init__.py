import logging

import azure.functions as func

from utils.dashboard import get_dashboard_data
from utils.db_utils import get_db
from utils.errors import BattleError
from utils.http import error_response, options_response, respond
from utils.periods import parse_ymd
from utils.settings import get_dashboard_logger, relaxed_filters_enabled


def _truthy(value) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes")


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info("Dashboard_API processed a request.")

    if req.method == "OPTIONS":
        return options_response()
    if req.method != "GET":
        return error_response("Method not supported", status=405)

    mode = req.params.get("mode") or req.params.get("view")
    date_from = req.params.get("dateFrom")
    date_to = req.params.get("dateTo")
    for name, value in (("dateFrom", date_from), ("dateTo", date_to)):
        if value and parse_ymd(value) is None:
            return error_response(f"{name} must be YYYY-MM-DD", status=400)

    # The relaxed cascade is a debugging aid: it needs both the query flag and the env switch
    relax = relaxed_filters_enabled() and _truthy(req.params.get("relaxed"))

    try:
        data = get_dashboard_data(
            get_db(),
            mode,
            date_from,
            date_to,
            relax_filters=relax,
            logger=get_dashboard_logger(),
        )
    except BattleError as e:
        logging.warning(f"Dashboard_API rejected request: {e}")
        return error_response(e.user_message, status=e.status_code)
    except Exception as e:
        logging.error(f"Error in Dashboard_API: {e}", exc_info=True)
        return error_response("Failed to load dashboard", status=500)

    return respond(data)
