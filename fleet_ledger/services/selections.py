"""Plan selection lifecycle - creation, ledger reads and status transitions"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from fleet_ledger.config import settings
from fleet_ledger.domain.accrual import accrual_summary, daily_rent_entries
from fleet_ledger.domain.exceptions import ActiveSelectionExistsError, ValidationError
from fleet_ledger.domain.models import (
    AccrualSummary,
    ClockState,
    DailyRentEntry,
    Dues,
    LedgerEvent,
    PaymentStatus,
    PlanType,
    RentClockPolicy,
    SelectionStatus,
)
from fleet_ledger.domain.obligations import accidental_cover_total, compute_dues
from fleet_ledger.domain.status import transition
from fleet_ledger.infrastructure.database.models import PlanSelection
from fleet_ledger.infrastructure.database.repositories import PlanSelectionRepository, to_snapshot
from fleet_ledger.infrastructure.observability.logging import log_status_change
from fleet_ledger.infrastructure.observability.metrics import status_transition_counter
from fleet_ledger.services.common import load_selection, parse_selection_id, run_with_conflict_retry
from fleet_ledger.utils.date_utils import utc_now


@dataclass
class LedgerView:
    """Obligations read model: dues plus the accrual behind the rent due"""

    dues: Dues
    accrual: AccrualSummary


def create_selection(
    db: Session,
    driver_mobile: str,
    plan_name: str,
    plan_type: PlanType,
    rent_per_day_paise: int,
    security_deposit_paise: int = 0,
    accidental_cover_paise: Optional[int] = None,
    driver_id: Optional[str] = None,
    driver_username: Optional[str] = None,
    selected_rent_slab: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> PlanSelection:
    """
    Record a driver's plan choice and start its accrual clock.

    Rent per day and deposit are locked here and never recalculated from the
    plan afterwards. Weekly plans carry the slab's accidental cover (default
    from settings); daily plans carry none.
    """
    if rent_per_day_paise < 0 or security_deposit_paise < 0:
        raise ValidationError("Plan amounts cannot be negative")

    repo = PlanSelectionRepository(db)
    if repo.get_active_for_driver(driver_id, driver_mobile) is not None:
        raise ActiveSelectionExistsError(
            "Driver already has an active plan. Complete or deactivate it before selecting a new one."
        )

    if plan_type == PlanType.WEEKLY:
        cover = settings.default_accidental_cover_paise if accidental_cover_paise is None else accidental_cover_paise
    else:
        cover = 0

    at = now or utc_now()
    selection = repo.create_selection(
        driver_id=driver_id,
        driver_username=driver_username,
        driver_mobile=driver_mobile,
        plan_name=plan_name,
        plan_type=plan_type.value,
        security_deposit_paise=security_deposit_paise,
        rent_per_day_paise=rent_per_day_paise,
        accidental_cover_paise=cover,
        selected_rent_slab=selected_rent_slab,
        selected_date=at,
        status=SelectionStatus.ACTIVE.value,
        payment_status=PaymentStatus.PENDING.value,
        rent_start_date=at,
        created_at=at,
    )
    db.commit()
    return selection


def get_selection(db: Session, selection_id: str) -> PlanSelection:
    return load_selection(db, parse_selection_id(selection_id))


def list_selections_by_mobile(db: Session, driver_mobile: str) -> List[PlanSelection]:
    return PlanSelectionRepository(db).list_by_mobile(driver_mobile)


def read_obligations(selection: PlanSelection, as_of: Optional[datetime] = None) -> LedgerView:
    """Dues and accrual as of a moment; recomputed on every call"""
    at = as_of or utc_now()
    snapshot = to_snapshot(selection)
    tz = settings.business_tz
    return LedgerView(dues=compute_dues(snapshot, at, tz), accrual=accrual_summary(snapshot, at, tz))


def rent_summary(selection: PlanSelection, as_of: Optional[datetime] = None) -> Tuple[AccrualSummary, List[DailyRentEntry]]:
    at = as_of or utc_now()
    snapshot = to_snapshot(selection)
    tz = settings.business_tz
    return accrual_summary(snapshot, at, tz), daily_rent_entries(snapshot, at, tz)


def accidental_cover_for(selection: PlanSelection) -> int:
    return accidental_cover_total(to_snapshot(selection))


def _apply_transition(selection: PlanSelection, target: SelectionStatus, at: datetime) -> Optional[LedgerEvent]:
    previous = selection.status
    clock = transition(
        ClockState(
            status=SelectionStatus(selection.status),
            rent_start_date=selection.rent_start_date,
            rent_paused_date=selection.rent_paused_date,
        ),
        target,
        at,
        RentClockPolicy(settings.rent_clock_policy),
    )
    selection.status = clock.status.value
    selection.rent_start_date = clock.rent_start_date
    selection.rent_paused_date = clock.rent_paused_date
    if previous == clock.status.value:
        return None
    return LedgerEvent(
        event_type="status_changed",
        selection_id=str(selection.id),
        driver_id=selection.driver_id,
        amount_paise=0,
        obligation_type=None,
    )


def change_status(
    db: Session,
    selection_id: str,
    target: SelectionStatus,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> Tuple[PlanSelection, List[LedgerEvent]]:
    """Run a status transition; only the accrual clock changes"""
    sid = parse_selection_id(selection_id)

    def operation():
        selection = load_selection(db, sid)
        previous = selection.status
        event = _apply_transition(selection, target, now or utc_now())
        return selection, previous, event

    selection, previous, event = run_with_conflict_retry(db, operation)
    if event is None:
        return selection, []

    status_transition_counter.labels(target=target.value).inc()
    log_status_change(str(selection.id), previous, target.value, request_id)
    return selection, [event]


def assign_vehicle(
    db: Session,
    selection_id: str,
    vehicle_id: str,
    now: Optional[datetime] = None,
    request_id: Optional[str] = None,
) -> Tuple[PlanSelection, List[LedgerEvent]]:
    """Link a vehicle; assignment implicitly activates the selection"""
    if not vehicle_id:
        raise ValidationError("Vehicle ID is required")
    sid = parse_selection_id(selection_id)

    def operation():
        selection = load_selection(db, sid)
        previous = selection.status
        selection.vehicle_id = vehicle_id
        event = _apply_transition(selection, SelectionStatus.ACTIVE, now or utc_now())
        return selection, previous, event

    selection, previous, event = run_with_conflict_retry(db, operation)
    if event is None:
        return selection, []

    status_transition_counter.labels(target=SelectionStatus.ACTIVE.value).inc()
    log_status_change(str(selection.id), previous, SelectionStatus.ACTIVE.value, request_id)
    return selection, [event]
