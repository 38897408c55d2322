import json
import math
import os
from datetime import date, datetime

import azure.functions as func


def cors_headers():
    return {
        "Access-Control-Allow-Origin": os.getenv("ALLOWED_ORIGIN", ""),
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET,POST,PUT,OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization",
    }


def sanitize_for_json(obj):
    """Recursively replace NaN and Infinity with None in nested structures"""
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            return None
        return obj
    elif isinstance(obj, dict):
        return {k: sanitize_for_json(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [sanitize_for_json(item) for item in obj]
    return obj


def json_serial(obj):
    """JSON serializer for objects not serializable by default json code"""
    if isinstance(obj, datetime):
        iso = obj.isoformat()
        if obj.tzinfo is None:
            return iso + "Z"
        return iso
    if isinstance(obj, date):
        return obj.isoformat()
    return str(obj)


def respond(body=None, status=200):
    return func.HttpResponse(
        json.dumps(sanitize_for_json(body), default=json_serial) if body is not None else "",
        status_code=status,
        mimetype="application/json",
        headers=cors_headers(),
    )


def error_response(message, status=400, **extra):
    return respond({"error": message, **extra}, status=status)


def options_response():
    return func.HttpResponse("", status_code=204, headers=cors_headers())


def read_json(req: func.HttpRequest) -> dict:
    """Request body as a dict; raises ValueError for invalid or non-object JSON."""
    body = req.get_json()
    if not isinstance(body, dict):
        raise ValueError("JSON body must be an object")
    return body
