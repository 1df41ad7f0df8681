"""Covenant threshold evaluation.

Pure functions only: no session, no clock. Given a measured value and a
threshold rule, classify the covenant as compliant, warning or breach.

The warning band sits within 10% of the threshold on the compliant side:

    less_than / less_than_equal          warning from threshold * 0.9 upwards
    greater_than / greater_than_equal    warning up to threshold * 1.1

The band ratios are a fixed policy for every covenant type.
"""

from __future__ import annotations

import math
from numbers import Real
from typing import Any

from app.schemas.covenants import CovenantStatus, ThresholdOperator

UPPER_LIMIT_WARNING_RATIO = 0.9
LOWER_LIMIT_WARNING_RATIO = 1.1


def is_finite_number(value: Any) -> bool:
    # bool is an int subclass; True/False are never a measured metric
    if value is None or isinstance(value, bool) or not isinstance(value, Real):
        return False
    return math.isfinite(float(value))


def _coerce_operator(operator: ThresholdOperator | str) -> ThresholdOperator:
    try:
        return ThresholdOperator(operator)
    except ValueError as exc:
        raise ValueError(f"Unknown threshold operator: {operator!r}") from exc


def is_breached(current: float, operator: ThresholdOperator | str, threshold: float) -> bool:
    op = _coerce_operator(operator)
    if op is ThresholdOperator.LESS_THAN:
        return current >= threshold
    if op is ThresholdOperator.LESS_THAN_EQUAL:
        return current > threshold
    if op is ThresholdOperator.GREATER_THAN:
        return current <= threshold
    return current < threshold


def is_near_breach(current: float, operator: ThresholdOperator | str, threshold: float) -> bool:
    op = _coerce_operator(operator)
    if op in (ThresholdOperator.LESS_THAN, ThresholdOperator.LESS_THAN_EQUAL):
        return current >= threshold * UPPER_LIMIT_WARNING_RATIO
    return current <= threshold * LOWER_LIMIT_WARNING_RATIO


def evaluate_status(
    current_value: Any,
    operator: ThresholdOperator | str,
    threshold_value: float,
) -> CovenantStatus | None:
    """Classify ``current_value`` against the rule.

    Returns ``None`` when there is nothing to judge (missing or non-finite value);
    callers must then leave the covenant untouched. Raises ``ValueError`` for an
    operator outside the four supported ones.
    """
    op = _coerce_operator(operator)
    if not is_finite_number(current_value):
        return None
    current = float(current_value)
    threshold = float(threshold_value)
    if is_breached(current, op, threshold):
        return CovenantStatus.BREACH
    if is_near_breach(current, op, threshold):
        return CovenantStatus.WARNING
    return CovenantStatus.COMPLIANT
