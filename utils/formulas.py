from __future__ import annotations

import math

from .models import BattleType, MetricRule
from .normalize import metric_rule_from_doc
from .periods import is_week_key
from .scoring_engine import normalize_battle_type, parse_or_zero, score_metric

# A formula may only be saved or published when its metric caps add up to this
REQUIRED_TOTAL_POINTS = 1000


def allowed_metric_keys(battle_type) -> list[str]:
    if normalize_battle_type(battle_type) is BattleType.DEPOTS:
        return ["leads", "sales"]
    return ["leads", "payins", "sales"]


def normalize_formula_metrics(battle_type, metrics) -> list[MetricRule]:
    """One rule per allowed metric key, in editor order; missing rules are zeroed."""
    by_key: dict[str, MetricRule] = {}
    for item in metrics or []:
        rule = metric_rule_from_doc(item)
        if rule is not None and rule.key not in by_key:
            by_key[rule.key] = rule
    return [
        by_key.get(key) or MetricRule(key=key, divisor=0.0, max_points=0.0)
        for key in allowed_metric_keys(battle_type)
    ]


def total_points(metrics) -> float:
    return sum(parse_or_zero(getattr(rule, "max_points", 0)) for rule in metrics)


def validate_formula(
    battle_type,
    metrics,
    start_week_key: str | None = None,
    end_week_key: str | None = None,
) -> list[str]:
    errors = []
    allowed = allowed_metric_keys(battle_type)

    for i, item in enumerate(metrics or []):
        rule = metric_rule_from_doc(item)
        if rule is None:
            errors.append(f"metrics[{i}]: missing metric key")
            continue
        if rule.key not in allowed:
            errors.append(f"metrics[{i}]: '{rule.key}' is not scored in {normalize_battle_type(battle_type).value} battles")

        raw = item if isinstance(item, dict) else {}
        for field, value in (
            ("divisor", raw.get("divisor", rule.divisor)),
            ("maxPoints", raw.get("maxPoints", raw.get("max_points", rule.max_points))),
        ):
            try:
                num = float(value)
            except (TypeError, ValueError):
                errors.append(f"metrics[{i}].{field}: must be a number")
                continue
            if not math.isfinite(num) or num < 0:
                errors.append(f"metrics[{i}].{field}: must be >= 0")

    points = total_points(normalize_formula_metrics(battle_type, metrics))
    if points != REQUIRED_TOTAL_POINTS:
        errors.append(f"Total points must equal {REQUIRED_TOTAL_POINTS} (got {points:g})")

    if start_week_key and not is_week_key(start_week_key):
        errors.append(f"effective_start_week_key: invalid week key {start_week_key!r}")
    if end_week_key and not is_week_key(end_week_key):
        errors.append(f"effective_end_week_key: invalid week key {end_week_key!r}")
    if (
        start_week_key
        and end_week_key
        and is_week_key(start_week_key)
        and is_week_key(end_week_key)
        and start_week_key > end_week_key
    ):
        errors.append("effective_start_week_key must not be after effective_end_week_key")

    return errors


def preview_formula(battle_type, metrics, inputs: dict | None) -> dict:
    """Points a formula would award for the given totals (formula editor preview)."""
    normalized = normalize_battle_type(battle_type)
    inputs = inputs or {}
    totals = {
        "leads": parse_or_zero(inputs.get("leads")),
        "payins": 0.0 if normalized is BattleType.DEPOTS else parse_or_zero(inputs.get("payins")),
        "sales": parse_or_zero(inputs.get("sales")),
    }

    breakdown = []
    for rule in normalize_formula_metrics(normalized, metrics):
        points = score_metric(totals[rule.key], rule.divisor, rule.max_points)
        breakdown.append({**rule.to_dict(), "actual": totals[rule.key], "points": points})

    return {
        "battleType": normalized.value,
        "totals": totals,
        "metrics": breakdown,
        "total": sum(item["points"] for item in breakdown),
    }
