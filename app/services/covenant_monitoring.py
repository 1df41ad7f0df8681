"""Covenant compliance monitoring.

Evaluates covenants against measured values, persists the resulting status and
sends the facility owner one breach notification per breach episode.

Each covenant is handled in its own transaction: the new status, value,
timestamps and ``breach_notified`` flag are written by a single UPDATE, so a
reader never sees a half-applied check, and a failure on one covenant leaves
its siblings untouched. Covenants are snapshotted into ``CovenantState``
before any commit so a rollback cannot expire state still needed for the
rest of the batch.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timezone
from typing import Any, Iterable, Mapping, Sequence
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_ops_logger
from app.core.permissions import PermissionCode
from app.core.settings import settings
from app.models.covenant import Covenant
from app.models.facility import Facility
from app.schemas.covenants import (
    BreachSummary,
    CheckedResult,
    CheckFrequency,
    CheckSummary,
    CovenantCheckResponse,
    CovenantOut,
    CovenantStatus,
    FailedResult,
    NotificationSkipReason,
    SkippedResult,
    SkipReason,
    ThresholdOperator,
)
from app.schemas.notifications import NotificationPayload, NotificationPriority, NotificationType
from app.services import covenant_rules, facilities, notifications
from app.services import covenants as covenant_service
from app.services.audit import record_audit_log
from app.services.authz import AuthContext

logger = logging.getLogger(__name__)
ops_logger = get_ops_logger()

_OPERATOR_SYMBOLS = {
    ThresholdOperator.LESS_THAN.value: "<",
    ThresholdOperator.LESS_THAN_EQUAL.value: "<=",
    ThresholdOperator.GREATER_THAN.value: ">",
    ThresholdOperator.GREATER_THAN_EQUAL.value: ">=",
}

_FREQUENCY_MONTHS = {
    CheckFrequency.MONTHLY.value: 1,
    CheckFrequency.QUARTERLY.value: 3,
    CheckFrequency.ANNUAL.value: 12,
}


@dataclass(frozen=True, slots=True)
class MonitorOptions:
    reset_on_recovery: bool = True
    notify_on_warning: bool = False

    @classmethod
    def from_settings(cls) -> "MonitorOptions":
        return cls(
            reset_on_recovery=settings.covenant_reset_breach_notified_on_recovery,
            notify_on_warning=settings.covenant_notify_on_warning,
        )


@dataclass(frozen=True, slots=True)
class CovenantState:
    id: UUID
    org_id: str
    facility_id: UUID
    covenant_type: str
    threshold_operator: str
    threshold_value: float
    current_value: float | None
    status: str | None
    check_frequency: str
    next_check_date: date | None
    last_checked: datetime | None
    breach_notified: bool

    @classmethod
    def from_model(cls, covenant: Covenant) -> "CovenantState":
        return cls(
            id=covenant.id,
            org_id=covenant.org_id,
            facility_id=covenant.facility_id,
            covenant_type=covenant.covenant_type,
            threshold_operator=covenant.threshold_operator,
            threshold_value=covenant.threshold_value,
            current_value=covenant.current_value,
            status=covenant.status,
            check_frequency=covenant.check_frequency,
            next_check_date=covenant.next_check_date,
            last_checked=covenant.last_checked,
            breach_notified=bool(covenant.breach_notified),
        )


@dataclass(frozen=True, slots=True)
class FacilityRef:
    id: UUID
    fund_name: str
    owner_user_id: UUID | None

    @classmethod
    def from_model(cls, facility: Facility) -> "FacilityRef":
        return cls(id=facility.id, fund_name=facility.fund_name, owner_user_id=facility.gp_user_id)


@dataclass(frozen=True, slots=True)
class CovenantTransition:
    previous_status: CovenantStatus | None
    new_status: CovenantStatus
    state: CovenantState
    notify_breach: bool
    notify_warning: bool

    @property
    def status_changed(self) -> bool:
        return self.previous_status != self.new_status

    @property
    def breach_detected(self) -> bool:
        return self.new_status is CovenantStatus.BREACH and self.previous_status is not CovenantStatus.BREACH


def _add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def compute_next_check_date(frequency: str | None, from_date: date) -> date | None:
    """Next scheduled check; ``None`` for ad hoc covenants."""
    months = _FREQUENCY_MONTHS.get((frequency or "").lower())
    if months is None:
        return None
    return _add_months(from_date, months)


def _parse_status(value: str | None) -> CovenantStatus | None:
    if value is None:
        return None
    try:
        return CovenantStatus(value)
    except ValueError:
        logger.warning("Ignoring unrecognised stored covenant status %r", value)
        return None


def apply_check(
    state: CovenantState,
    current_value: Any,
    *,
    now: datetime,
    options: MonitorOptions | None = None,
) -> CovenantTransition | None:
    """Pure state transition for one covenant check.

    Returns ``None`` when there is no usable value; the covenant must then keep
    its status and ``last_checked``. Raises ``ValueError`` for an unknown operator.
    """
    options = options or MonitorOptions()
    new_status = covenant_rules.evaluate_status(current_value, state.threshold_operator, state.threshold_value)
    if new_status is None:
        return None

    previous_status = _parse_status(state.status)
    breach_notified = state.breach_notified
    if (
        options.reset_on_recovery
        and previous_status is CovenantStatus.BREACH
        and new_status is not CovenantStatus.BREACH
    ):
        breach_notified = False

    updated = replace(
        state,
        current_value=float(current_value),
        status=new_status.value,
        last_checked=now,
        next_check_date=compute_next_check_date(state.check_frequency, now.date()),
        breach_notified=breach_notified,
    )
    return CovenantTransition(
        previous_status=previous_status,
        new_status=new_status,
        state=updated,
        notify_breach=new_status is CovenantStatus.BREACH and not breach_notified,
        notify_warning=(
            options.notify_on_warning
            and new_status is CovenantStatus.WARNING
            and previous_status is CovenantStatus.COMPLIANT
        ),
    )


def _format_value(value: float) -> str:
    return f"{value:g}"


def _breach_payload(state: CovenantState, facility: FacilityRef) -> NotificationPayload:
    symbol = _OPERATOR_SYMBOLS.get(state.threshold_operator, state.threshold_operator)
    return NotificationPayload(
        recipient_user_id=facility.owner_user_id,
        type=NotificationType.COVENANT_BREACH,
        title="Covenant Breach Detected",
        message=(
            f"{state.covenant_type} covenant has been breached for facility {facility.fund_name}. "
            f"Current value: {_format_value(state.current_value)}, "
            f"threshold: {symbol} {_format_value(state.threshold_value)}. Immediate action required."
        ),
        related_entity_type="covenant",
        related_entity_id=str(state.id),
        action_url=f"/operations/covenant-monitoring?facilityId={facility.id}",
        priority=NotificationPriority.URGENT,
    )


def _warning_payload(state: CovenantState, facility: FacilityRef) -> NotificationPayload:
    symbol = _OPERATOR_SYMBOLS.get(state.threshold_operator, state.threshold_operator)
    return NotificationPayload(
        recipient_user_id=facility.owner_user_id,
        type=NotificationType.COVENANT_WARNING,
        title="Covenant Warning",
        message=(
            f"{state.covenant_type} covenant is approaching its threshold for facility {facility.fund_name}. "
            f"Current value: {_format_value(state.current_value)}, "
            f"threshold: {symbol} {_format_value(state.threshold_value)}."
        ),
        related_entity_type="covenant",
        related_entity_id=str(state.id),
        action_url=f"/operations/covenant-monitoring?facilityId={facility.id}",
        priority=NotificationPriority.HIGH,
    )


async def _send(db: AsyncSession, state: CovenantState, payload: NotificationPayload) -> UUID | None:
    """Insert the notification inside a savepoint; a failure never touches the covenant write."""
    try:
        async with db.begin_nested():
            notification = await notifications.create_notification(db, state.org_id, payload)
    except SQLAlchemyError:
        logger.exception(
            "Failed to record %s notification for covenant %s; will retry on next check",
            payload.type.value,
            state.id,
        )
        return None
    return notification.id


def _update_statement(state: CovenantState):
    return (
        update(Covenant)
        .where(Covenant.id == state.id, Covenant.org_id == state.org_id)
        .values(
            current_value=state.current_value,
            status=state.status,
            last_checked=state.last_checked,
            next_check_date=state.next_check_date,
            breach_notified=state.breach_notified,
        )
    )


async def _check_one(
    db: AsyncSession,
    auth: AuthContext,
    state: CovenantState,
    facility: FacilityRef,
    current_value: Any,
    *,
    now: datetime,
    options: MonitorOptions,
) -> CheckedResult | SkippedResult | FailedResult:
    if current_value is None:
        logger.info("Covenant %s has no current value, skipping", state.id)
        return SkippedResult(covenant_id=state.id, reason=SkipReason.NO_CURRENT_VALUE)
    if not covenant_rules.is_finite_number(current_value):
        logger.warning("Covenant %s received non-finite value %r, skipping", state.id, current_value)
        return SkippedResult(covenant_id=state.id, reason=SkipReason.INVALID_VALUE)

    try:
        transition = apply_check(state, current_value, now=now, options=options)
    except ValueError as exc:
        logger.error("Covenant %s cannot be evaluated: %s", state.id, exc)
        return FailedResult(covenant_id=state.id, error=str(exc))
    if transition is None:
        return SkippedResult(covenant_id=state.id, reason=SkipReason.INVALID_VALUE)

    new_state = transition.state
    notification_id: UUID | None = None
    skipped_reason: NotificationSkipReason | None = None

    try:
        if transition.notify_breach or transition.notify_warning:
            if facility.owner_user_id is None:
                skipped_reason = NotificationSkipReason.OWNER_UNASSIGNED
                alert = {"covenant_id": str(state.id), "facility_id": str(facility.id)}
                if transition.notify_breach:
                    ops_logger.warning(
                        "Covenant %s breached but facility %s has no owner; notification not sent",
                        state.id,
                        facility.id,
                        extra={"alert": "covenant_breach_unrouted", **alert},
                    )
                else:
                    ops_logger.info(
                        "Covenant %s entered warning but facility %s has no owner; notification not sent",
                        state.id,
                        facility.id,
                        extra={"alert": "covenant_warning_unrouted", **alert},
                    )
            else:
                payload = (
                    _breach_payload(new_state, facility)
                    if transition.notify_breach
                    else _warning_payload(new_state, facility)
                )
                notification_id = await _send(db, new_state, payload)
                if notification_id is None:
                    skipped_reason = NotificationSkipReason.DELIVERY_FAILED
                elif transition.notify_breach:
                    new_state = replace(new_state, breach_notified=True)

        result = await db.execute(_update_statement(new_state))
        if getattr(result, "rowcount", 1) == 0:
            await db.rollback()
            return FailedResult(covenant_id=state.id, error="Covenant no longer exists")
        if transition.status_changed:
            record_audit_log(
                db,
                auth,
                action="covenant.status_changed",
                resource_type="covenant",
                resource_id=str(state.id),
                old_value={"status": state.status, "current_value": state.current_value},
                new_value={"status": new_state.status, "current_value": new_state.current_value},
            )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Failed to persist check for covenant %s: %s", state.id, exc)
        return FailedResult(covenant_id=state.id, error="Failed to persist covenant status")

    logger.info(
        "Covenant %s checked: %s -> %s (value: %s)",
        state.id,
        transition.previous_status.value if transition.previous_status else None,
        transition.new_status.value,
        new_state.current_value,
    )
    return CheckedResult(
        covenant_id=state.id,
        covenant_type=state.covenant_type,
        previous_status=transition.previous_status,
        new_status=transition.new_status,
        current_value=new_state.current_value,
        threshold_value=state.threshold_value,
        breach_detected=transition.breach_detected,
        notification_id=notification_id,
        notification_skipped_reason=skipped_reason,
    )


def summarize(results: Sequence[CheckedResult | SkippedResult | FailedResult]) -> CheckSummary:
    summary = CheckSummary()
    for item in results:
        if isinstance(item, CheckedResult):
            summary.checked += 1
            if item.new_status is CovenantStatus.BREACH:
                summary.breaches += 1
            if item.breach_detected:
                summary.new_breaches += 1
        elif isinstance(item, SkippedResult):
            summary.skipped += 1
        else:
            summary.failed += 1
    return summary


async def check_covenant(
    db: AsyncSession,
    auth: AuthContext,
    covenant_id: UUID,
    current_value: Any,
    *,
    now: datetime | None = None,
    options: MonitorOptions | None = None,
) -> CovenantCheckResponse:
    """Manual one-off check of a single covenant with an explicitly supplied value."""
    auth.require(PermissionCode.COVENANT_CHECK)
    covenant, facility = await covenant_service.get_covenant(db, auth, covenant_id)
    state = CovenantState.from_model(covenant)
    ref = FacilityRef.from_model(facility)
    result = await _check_one(
        db,
        auth,
        state,
        ref,
        current_value,
        now=now or datetime.now(timezone.utc),
        options=options or MonitorOptions.from_settings(),
    )
    return CovenantCheckResponse(facility_id=ref.id, results=[result], summary=summarize([result]))


async def check_facility_covenants(
    db: AsyncSession,
    auth: AuthContext,
    facility_id: UUID,
    values: Mapping[UUID, Any] | None = None,
    *,
    now: datetime | None = None,
    options: MonitorOptions | None = None,
) -> CovenantCheckResponse:
    """Check every covenant of a facility.

    ``values`` supplies freshly measured values by covenant id; covenants not in
    the mapping are re-evaluated from their stored ``current_value``.
    """
    auth.require(PermissionCode.COVENANT_CHECK)
    facility = await facilities.get_facility(db, auth, facility_id)
    ref = FacilityRef.from_model(facility)
    states = [CovenantState.from_model(c) for c in await covenant_service.load_facility_covenants(db, facility)]

    supplied = dict(values or {})
    unknown = set(supplied) - {state.id for state in states}
    if unknown:
        raise ValueError(f"Covenants not on this facility: {', '.join(sorted(str(u) for u in unknown))}")

    now = now or datetime.now(timezone.utc)
    options = options or MonitorOptions.from_settings()
    logger.info("Checking %d covenants for facility %s", len(states), ref.id)
    results = []
    for state in states:
        value = supplied[state.id] if state.id in supplied else state.current_value
        results.append(await _check_one(db, auth, state, ref, value, now=now, options=options))
    return CovenantCheckResponse(facility_id=ref.id, results=results, summary=summarize(results))


def due_covenants_statement(org_id: str, as_of: date, limit: int):
    """Oldest-due first. Rows without a stored value would only ever be skipped,
    so they are left out and cannot fill the batch."""
    return (
        select(Covenant)
        .where(
            Covenant.org_id == org_id,
            Covenant.current_value.is_not(None),
            or_(
                Covenant.next_check_date <= as_of,
                (Covenant.next_check_date.is_(None) & Covenant.last_checked.is_(None)),
            ),
        )
        .order_by(Covenant.next_check_date.asc().nulls_first(), Covenant.id)
        .limit(limit)
    )


async def check_all_due_covenants(
    db: AsyncSession,
    auth: AuthContext,
    *,
    as_of: date | None = None,
    now: datetime | None = None,
    limit: int | None = None,
    options: MonitorOptions | None = None,
) -> CovenantCheckResponse:
    """Scheduled re-check of every covenant in the org that is due.

    Due means ``next_check_date <= as_of``, or never scheduled and never checked.
    Values come from the stored ``current_value``, which upstream data feeds keep
    current; covenants that have none yet are not picked up.
    """
    auth.require(PermissionCode.COVENANT_CHECK_DUE)
    now = now or datetime.now(timezone.utc)
    as_of = as_of or now.date()
    options = options or MonitorOptions.from_settings()

    stmt = due_covenants_statement(auth.org_id, as_of, limit or settings.covenant_due_batch_limit)
    states = [CovenantState.from_model(c) for c in (await db.execute(stmt)).scalars().all()]
    facility_refs = await _load_facility_refs(db, auth.org_id, {s.facility_id for s in states})
    logger.info("Found %d covenants due for checking as of %s", len(states), as_of.isoformat())

    results = []
    for state in states:
        ref = facility_refs.get(state.facility_id)
        if ref is None:
            logger.error("Facility %s not found, skipping covenant %s", state.facility_id, state.id)
            results.append(FailedResult(covenant_id=state.id, error="Facility not found"))
            continue
        results.append(await _check_one(db, auth, state, ref, state.current_value, now=now, options=options))

    summary = summarize(results)
    logger.info(
        "Automated covenant monitoring complete: %d checked, %d skipped, %d failed, %d new breaches",
        summary.checked,
        summary.skipped,
        summary.failed,
        summary.new_breaches,
    )
    return CovenantCheckResponse(results=results, summary=summary)


async def _load_facility_refs(db: AsyncSession, org_id: str, facility_ids: Iterable[UUID]) -> dict[UUID, FacilityRef]:
    ids = list(facility_ids)
    if not ids:
        return {}
    stmt = select(Facility).where(Facility.org_id == org_id, Facility.id.in_(ids))
    result = await db.execute(stmt)
    return {facility.id: FacilityRef.from_model(facility) for facility in result.scalars().all()}


async def get_breach_summary(db: AsyncSession, auth: AuthContext, facility_id: UUID) -> BreachSummary:
    covenants = await covenant_service.list_covenants(db, auth, facility_id)
    counts = {status.value: 0 for status in CovenantStatus}
    unchecked = 0
    for covenant in covenants:
        if covenant.status in counts:
            counts[covenant.status] += 1
        else:
            unchecked += 1
    return BreachSummary(
        facility_id=facility_id,
        total=len(covenants),
        compliant=counts[CovenantStatus.COMPLIANT.value],
        warning=counts[CovenantStatus.WARNING.value],
        breach=counts[CovenantStatus.BREACH.value],
        unchecked=unchecked,
        breaches=[
            CovenantOut.model_validate(c) for c in covenants if c.status == CovenantStatus.BREACH.value
        ],
    )
