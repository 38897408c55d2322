import json
import logging

import azure.functions as func

from utils.dashboard import get_public_summary
from utils.db_utils import get_db
from utils.errors import BattleError
from utils.http import error_response, options_response, respond
from utils.periods import parse_ymd
from utils.settings import get_dashboard_logger


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info("Leaderboard_API processed a request.")

    if req.method == "OPTIONS":
        return options_response()

    # Route format: "leaderboard/{*route}"
    subpath = (req.route_params.get("route") or "").strip("/")

    if subpath in ("", "summary"):
        return get_summary(req)
    elif subpath == "health":
        return func.HttpResponse(
            json.dumps({"status": "ok", "service": "leaderboard-api"}),
            mimetype="application/json",
        )

    return error_response("Not Found", status=404)


def get_summary(req):
    battle_type = req.params.get("battleType") or req.params.get("view")
    date_from = req.params.get("dateFrom")
    date_to = req.params.get("dateTo")
    for name, value in (("dateFrom", date_from), ("dateTo", date_to)):
        if value and parse_ymd(value) is None:
            return error_response(f"{name} must be YYYY-MM-DD", status=400)

    try:
        summary = get_public_summary(
            get_db(), battle_type, date_from, date_to, logger=get_dashboard_logger()
        )
    except BattleError as e:
        return error_response(e.user_message, status=e.status_code)
    except Exception as e:
        logging.error(f"Error in Leaderboard_API: {e}", exc_info=True)
        return error_response("Failed to load leaderboard", status=500)

    return respond(summary)
