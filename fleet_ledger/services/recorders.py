"""
Payment recorders - driver confirmation, admin record and gateway capture.

All three converge on the same path: compute dues, allocate, bump the
cumulative totals, append an immutable payment event, commit under the
optimistic version check.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fleet_ledger.config import settings
from fleet_ledger.domain.allocation import allocate, rescale_split
from fleet_ledger.domain.exceptions import ValidationError
from fleet_ledger.domain.models import (
    Breakdown,
    LedgerEvent,
    PaymentMode,
    PaymentSource,
    PaymentStatus,
    PaymentType,
)
from fleet_ledger.domain.obligations import compute_dues
from fleet_ledger.infrastructure.database.models import PlanSelection
from fleet_ledger.infrastructure.database.repositories import (
    GatewayPaymentRepository,
    PlanSelectionRepository,
    to_snapshot,
)
from fleet_ledger.infrastructure.observability.logging import log_payment_recorded
from fleet_ledger.infrastructure.observability.metrics import record_payment
from fleet_ledger.services.common import load_selection, parse_selection_id, run_with_conflict_retry
from fleet_ledger.utils.date_utils import utc_now


@dataclass
class RecordedPayment:
    """Outcome of a recorder call"""

    selection: PlanSelection
    breakdown: Optional[Breakdown] = None
    events: List[LedgerEvent] = field(default_factory=list)
    duplicate: bool = False


def _require_positive(amount_paise: Optional[int], label: str) -> None:
    if amount_paise is not None and amount_paise <= 0:
        raise ValidationError(f"Invalid {label}. Must be a positive number")


def _apply_breakdown(selection: PlanSelection, breakdown: Breakdown) -> None:
    selection.deposit_paid_paise = (selection.deposit_paid_paise or 0) + breakdown.deposit_paise
    selection.rent_paid_paise = (selection.rent_paid_paise or 0) + breakdown.rent_paise
    selection.accidental_cover_paid_paise = (
        (selection.accidental_cover_paid_paise or 0) + breakdown.accidental_cover_paise
    )
    selection.extra_amount_paid_paise = (selection.extra_amount_paid_paise or 0) + breakdown.extra_paise


def _payment_event(selection: PlanSelection, event_type: str, amount_paise: int, declared: Optional[str]) -> LedgerEvent:
    return LedgerEvent(
        event_type=event_type,
        selection_id=str(selection.id),
        driver_id=selection.driver_id,
        amount_paise=amount_paise,
        obligation_type=declared or PaymentType.TOTAL.value,
    )


def confirm_driver_payment(
    db: Session,
    selection_id: str,
    payment_mode: PaymentMode,
    paid_amount_paise: Optional[int] = None,
    payment_type: Optional[PaymentType] = None,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> RecordedPayment:
    """
    Record a driver's self-reported payment.

    Confirmations accumulate: a selection whose payment status is already
    completed still accepts further payments. Without an amount only the
    payment status fields change.
    """
    if payment_type is not None and payment_type not in (PaymentType.RENT, PaymentType.SECURITY):
        raise ValidationError("Invalid payment type. Must be rent or security")
    _require_positive(paid_amount_paise, "payment amount")
    sid = parse_selection_id(selection_id)
    declared = payment_type.value if payment_type else None

    def operation() -> RecordedPayment:
        at = now or utc_now()
        selection = load_selection(db, sid)
        selection.payment_mode = payment_mode.value
        selection.payment_status = PaymentStatus.COMPLETED.value
        selection.payment_date = at

        if paid_amount_paise is None:
            return RecordedPayment(selection=selection)

        dues = compute_dues(to_snapshot(selection), at, settings.business_tz)
        breakdown = allocate(paid_amount_paise, payment_type, dues)

        selection.paid_amount_paise = (selection.paid_amount_paise or 0) + paid_amount_paise
        selection.payment_type = declared or PaymentType.TOTAL.value
        _apply_breakdown(selection, breakdown)
        PlanSelectionRepository(db).add_payment_event(
            selection,
            source=PaymentSource.DRIVER,
            mode=payment_mode.value,
            declared_type=declared,
            breakdown=breakdown,
        )
        return RecordedPayment(
            selection=selection,
            breakdown=breakdown,
            events=[_payment_event(selection, "driver_payment", paid_amount_paise, declared)],
        )

    result = run_with_conflict_retry(db, operation)
    if result.breakdown is not None:
        record_payment(PaymentSource.DRIVER.value, declared, result.breakdown.total_paise)
        log_payment_recorded(str(result.selection.id), PaymentSource.DRIVER.value, declared, result.breakdown, request_id)
    return result


def record_admin_payment(
    db: Session,
    selection_id: str,
    admin_paid_amount_paise: Optional[int] = None,
    admin_payment_type: Optional[PaymentType] = None,
    extra_amount_paise: Optional[int] = None,
    extra_reason: Optional[str] = None,
    adjustment_amount_paise: Optional[int] = None,
    adjustment_reason: Optional[str] = None,
    payment_status: Optional[PaymentStatus] = None,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> RecordedPayment:
    """
    Record an admin-entered payment plus optional extra charge / adjustment.

    Extras and adjustments are booked first so the payment is allocated
    against the updated dues. The stored admin event carries the full
    per-obligation breakdown.
    """
    _require_positive(admin_paid_amount_paise, "admin paid amount")
    _require_positive(extra_amount_paise, "extra amount")
    _require_positive(adjustment_amount_paise, "adjustment amount")
    if all(
        value is None
        for value in (admin_paid_amount_paise, extra_amount_paise, adjustment_amount_paise, payment_status)
    ):
        raise ValidationError("Nothing to update on the plan selection")
    sid = parse_selection_id(selection_id)

    def operation() -> RecordedPayment:
        at = now or utc_now()
        selection = load_selection(db, sid)
        repo = PlanSelectionRepository(db)
        events: List[LedgerEvent] = []

        if extra_amount_paise is not None:
            selection.extra_amount_paise = (selection.extra_amount_paise or 0) + extra_amount_paise
            repo.add_charge_entry(selection, "extra", extra_amount_paise, extra_reason or "")
            if extra_reason:
                selection.extra_reason = extra_reason
            events.append(LedgerEvent("extra_amount_added", str(selection.id), selection.driver_id, extra_amount_paise, "extra"))

        if adjustment_amount_paise is not None:
            selection.adjustment_amount_paise = (selection.adjustment_amount_paise or 0) + adjustment_amount_paise
            repo.add_charge_entry(selection, "adjustment", adjustment_amount_paise, adjustment_reason or "")
            if adjustment_reason:
                selection.adjustment_reason = adjustment_reason
            events.append(LedgerEvent("adjustment_added", str(selection.id), selection.driver_id, adjustment_amount_paise, "rent"))

        if payment_status is not None:
            selection.payment_status = payment_status.value

        breakdown = None
        if admin_paid_amount_paise is not None:
            declared = (admin_payment_type or PaymentType.TOTAL).value
            dues = compute_dues(to_snapshot(selection), at, settings.business_tz)
            breakdown = allocate(admin_paid_amount_paise, admin_payment_type, dues)

            _apply_breakdown(selection, breakdown)
            selection.admin_paid_amount_paise = (selection.admin_paid_amount_paise or 0) + admin_paid_amount_paise
            if not selection.payment_mode:
                selection.payment_mode = PaymentMode.CASH.value
            if selection.payment_date is None:
                selection.payment_date = at
            repo.add_payment_event(
                selection,
                source=PaymentSource.ADMIN,
                mode=selection.payment_mode,
                declared_type=declared,
                breakdown=breakdown,
            )
            events.append(_payment_event(selection, "admin_payment", admin_paid_amount_paise, declared))

        return RecordedPayment(selection=selection, breakdown=breakdown, events=events)

    result = run_with_conflict_retry(db, operation)
    if result.breakdown is not None:
        declared = (admin_payment_type or PaymentType.TOTAL).value
        record_payment(PaymentSource.ADMIN.value, declared, result.breakdown.total_paise)
        log_payment_recorded(str(result.selection.id), PaymentSource.ADMIN.value, declared, result.breakdown, request_id)
    return result


def record_gateway_payment(
    db: Session,
    selection_id: str,
    gateway_payment_id: str,
    amount_paise: int,
    payment_type: Optional[PaymentType] = None,
    deposit_amount_paise: Optional[int] = None,
    rent_amount_paise: Optional[int] = None,
    merchant_order_id: Optional[str] = None,
    payment_token: Optional[str] = None,
    gateway: Optional[str] = None,
    gateway_status: str = "captured",
    now: Optional[datetime] = None,
) -> RecordedPayment:
    """
    Credit a captured gateway payment, at most once per gateway payment id.

    An explicit deposit/rent split is rescaled to the captured amount when
    the two disagree. The processed-id row is written in the same
    transaction as the ledger change, so a concurrent duplicate loses on the
    primary key and is reported as a duplicate instead of double-crediting.
    """
    if not gateway_payment_id:
        raise ValidationError("Gateway payment ID is required")
    _require_positive(amount_paise, "payment amount")
    sid = parse_selection_id(selection_id)
    has_split = deposit_amount_paise is not None or rent_amount_paise is not None

    def operation() -> RecordedPayment:
        at = now or utc_now()
        selection = load_selection(db, sid)
        processed = GatewayPaymentRepository(db)
        if processed.is_processed(gateway_payment_id):
            return RecordedPayment(selection=selection, duplicate=True)

        declared = payment_type.value if payment_type else None
        if has_split:
            breakdown = rescale_split(amount_paise, deposit_amount_paise or 0, rent_amount_paise or 0)
        else:
            dues = compute_dues(to_snapshot(selection), at, settings.business_tz)
            breakdown = allocate(amount_paise, payment_type, dues)

        processed.mark_processed(gateway_payment_id, selection.id)
        _apply_breakdown(selection, breakdown)
        selection.paid_amount_paise = (selection.paid_amount_paise or 0) + amount_paise
        selection.payment_mode = PaymentMode.ONLINE.value
        selection.payment_status = PaymentStatus.COMPLETED.value
        selection.payment_date = at
        selection.payment_type = declared or PaymentType.TOTAL.value
        PlanSelectionRepository(db).add_payment_event(
            selection,
            source=PaymentSource.GATEWAY,
            mode=PaymentMode.ONLINE.value,
            declared_type=declared,
            breakdown=breakdown,
            transaction_id=gateway_payment_id,
            merchant_order_id=merchant_order_id,
            payment_token=payment_token,
            gateway=gateway or settings.default_gateway,
            gateway_status=gateway_status,
        )
        return RecordedPayment(
            selection=selection,
            breakdown=breakdown,
            events=[_payment_event(selection, "gateway_payment", amount_paise, declared)],
        )

    try:
        result = run_with_conflict_retry(db, operation)
    except IntegrityError:
        # Lost the race to a concurrent delivery of the same payment id
        return RecordedPayment(selection=load_selection(db, sid), duplicate=True)

    if not result.duplicate:
        declared = payment_type.value if payment_type else None
        record_payment(PaymentSource.GATEWAY.value, declared, result.breakdown.total_paise)
        log_payment_recorded(str(result.selection.id), PaymentSource.GATEWAY.value, declared, result.breakdown)
    return result
