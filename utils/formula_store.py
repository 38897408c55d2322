"""
Scoring formula persistence (collection `scoring_formulas`).

Formulas start as drafts, are edited by super admins and become read-only once
published. Saving and publishing both require a reason and a valid metric set
(caps summing to 1000).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from pymongo import ASCENDING, ReturnDocument

from .db_utils import id_filter
from .errors import FormulaNotFoundError, FormulaStateError, FormulaValidationError
from .formulas import normalize_formula_metrics, validate_formula
from .models import ScoringFormula
from .normalize import formula_from_doc, metric_docs_of

COLLECTION = "scoring_formulas"


def list_formulas(db, include_drafts: bool = False) -> list[ScoringFormula]:
    query = {} if include_drafts else {"status": "published"}
    cursor = db[COLLECTION].find(query).sort(
        [("battle_type", ASCENDING), ("effective_start_week_key", ASCENDING)]
    )
    return [formula_from_doc(doc) for doc in cursor]


def get_formula_doc(db, formula_id: str) -> dict:
    doc = db[COLLECTION].find_one(id_filter(formula_id))
    if not doc:
        raise FormulaNotFoundError(formula_id)
    return doc


def get_formula(db, formula_id: str) -> ScoringFormula:
    return formula_from_doc(get_formula_doc(db, formula_id))


def _require_reason(reason) -> str:
    trimmed = str(reason or "").strip()
    if not trimmed:
        raise FormulaValidationError(["Reason is required."])
    return trimmed


def _audit_event(action: str, by: str | None, reason: str) -> dict:
    return {
        "action": action,
        "by": by,
        "at": datetime.now(timezone.utc).isoformat(),
        "reason": reason,
    }


def update_draft(
    db,
    formula_id: str,
    *,
    metrics,
    reason,
    name: str | None = None,
    start_week_key: str | None = None,
    end_week_key: str | None = None,
    updated_by: str | None = None,
) -> ScoringFormula:
    reason = _require_reason(reason)
    current = get_formula_doc(db, formula_id)
    status = str(current.get("status") or "draft").lower()
    if status == "published":
        raise FormulaStateError(formula_id, status)

    battle_type = current.get("battle_type")
    start_week_key = start_week_key if start_week_key is not None else current.get("effective_start_week_key")
    end_week_key = end_week_key if end_week_key is not None else current.get("effective_end_week_key")

    errors = validate_formula(battle_type, metrics, start_week_key or None, end_week_key or None)
    if errors:
        raise FormulaValidationError(errors)

    rules = normalize_formula_metrics(battle_type, metrics)
    update = {
        "$set": {
            "config": {"metrics": [rule.to_dict() for rule in rules]},
            "name": name if name is not None else current.get("name", ""),
            "effective_start_week_key": start_week_key or None,
            "effective_end_week_key": end_week_key or None,
            "updatedAt": datetime.now(timezone.utc),
            "updatedBy": updated_by,
        },
        "$inc": {"version": 1},
        "$push": {"audit.events": _audit_event("UPDATED", updated_by, reason)},
    }
    doc = db[COLLECTION].find_one_and_update(
        {"_id": current["_id"], "status": {"$ne": "published"}},
        update,
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        # published between our read and write
        raise FormulaStateError(formula_id, "published")

    logging.info(f"[Formulas] Draft {formula_id} saved: version {doc.get('version')}")
    return formula_from_doc(doc)


def publish(db, formula_id: str, *, reason, published_by: str | None = None) -> ScoringFormula:
    """Publish a draft. Irreversible."""
    reason = _require_reason(reason)
    current = get_formula_doc(db, formula_id)
    status = str(current.get("status") or "draft").lower()
    if status == "published":
        raise FormulaStateError(formula_id, status)

    errors = validate_formula(
        current.get("battle_type"),
        metric_docs_of(current),
        current.get("effective_start_week_key"),
        current.get("effective_end_week_key"),
    )
    if errors:
        raise FormulaValidationError(errors)

    now = datetime.now(timezone.utc)
    doc = db[COLLECTION].find_one_and_update(
        {"_id": current["_id"], "status": {"$ne": "published"}},
        {
            "$set": {
                "status": "published",
                "publishedAt": now,
                "publishedBy": published_by,
                "updatedAt": now,
            },
            "$push": {"audit.events": _audit_event("PUBLISHED", published_by, reason)},
        },
        return_document=ReturnDocument.AFTER,
    )
    if not doc:
        raise FormulaStateError(formula_id, "published")

    logging.info(f"[Formulas] Formula {formula_id} published by {published_by}")
    return formula_from_doc(doc)
