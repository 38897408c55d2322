import logging
from datetime import datetime, timezone

import azure.functions as func
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from utils import rbac
from utils.data_source import RAW_DATA_FIELDS, list_agents
from utils.db_utils import get_db, id_filter
from utils.http import error_response, options_response, read_json, respond
from utils.normalize import index_by_id, record_from_doc
from utils.periods import default_date_range, parse_ymd

STATUS_FILTERS = {
    "published": {"published": True, "voided": {"$ne": True}},
    "unpublished": {"published": {"$ne": True}, "voided": {"$ne": True}},
    "voided": {"voided": True},
}

TOGGLE_FIELDS = ("published", "voided")


def main(req: func.HttpRequest) -> func.HttpResponse:
    logging.info("Publishing_API processed a request.")

    if req.method == "OPTIONS":
        return options_response()

    # Route format: "publishing/{*route}"
    parts = [p for p in (req.route_params.get("route") or "").split("/") if p]

    try:
        if not parts and req.method == "GET":
            return list_rows(req)
        if len(parts) == 2 and parts[1] in TOGGLE_FIELDS and req.method == "POST":
            return set_flag(req, parts[0], parts[1])
    except Exception as e:
        logging.error(f"Error in Publishing_API: {e}", exc_info=True)
        return error_response("Internal Server Error", status=500)

    return error_response("Not Found", status=404)


def build_query(params) -> dict:
    start, end = default_date_range(params.get("dateFrom"), params.get("dateTo"))
    query = {"date_real": {"$gte": start, "$lte": end}}
    agent_id = params.get("agentId")
    if agent_id:
        query["agent_id"] = agent_id
    status = params.get("status")
    if status in STATUS_FILTERS:
        query.update(STATUS_FILTERS[status])
    return query


def row_summary(row: dict, agents_by_id: dict) -> dict:
    record = record_from_doc(row, agents_by_id)
    return {
        "id": record.id,
        "agentId": record.agent_id,
        "agentName": record.agent.name if record.agent else "",
        "date": record.date,
        "leads": record.leads,
        "payins": record.payins,
        "sales": record.sales,
        "approved": record.approved,
        "published": record.published,
        "voided": record.voided,
        "voidedReason": row.get("voided_reason"),
    }


def counters(rows: list[dict]) -> dict:
    return {
        "total": len(rows),
        "published": sum(1 for r in rows if r["published"] and not r["voided"]),
        "unpublished": sum(1 for r in rows if not r["published"] and not r["voided"]),
        "voided": sum(1 for r in rows if r["voided"]),
    }


def list_rows(req):
    for name in ("dateFrom", "dateTo"):
        value = req.params.get(name)
        if value and parse_ymd(value) is None:
            return error_response(f"{name} must be YYYY-MM-DD", status=400)

    db = get_db()
    agents_by_id = index_by_id(list_agents(db))
    docs = db.raw_data.find(build_query(req.params), RAW_DATA_FIELDS).sort(
        [("date_real", DESCENDING), ("agent_id", ASCENDING)]
    )
    rows = [row_summary(doc, agents_by_id) for doc in docs]
    return respond({"rows": rows, "counters": counters(rows)})


def set_flag(req, row_id: str, field: str):
    # Publishing is a Super Admin action; company, depot and super admins may void
    email = rbac.get_user_email(req)
    if field == "published" and not rbac.is_super_admin(email):
        return error_response("Forbidden: Super Admins only", status=403)
    if field == "voided" and not rbac.can_void(email):
        return error_response("Forbidden: Admins only", status=403)

    try:
        body = read_json(req)
    except ValueError:
        return error_response("Invalid JSON", status=400)

    value = body.get("value")
    if not isinstance(value, bool):
        return error_response("'value' must be true or false", status=400)

    changes = {field: value, f"{field}_by": email, f"{field}_at": datetime.now(timezone.utc)}
    if field == "voided":
        reason = str(body.get("reason") or "").strip()
        if value and not reason:
            return error_response("A void reason is required", status=400)
        changes["voided_reason"] = reason if value else None

    db = get_db()
    doc = db.raw_data.find_one_and_update(
        id_filter(row_id),
        {"$set": changes},
        projection=RAW_DATA_FIELDS,
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        return error_response("Row not found", status=404)

    logging.info(f"[Publishing] {row_id} {field}={value} by {email}")
    return respond(row_summary(doc, index_by_id(list_agents(db))))
