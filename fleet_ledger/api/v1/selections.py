"""/v1/plan-selections - plan choice, ledger reads and status changes"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from fleet_ledger.api.dependencies import get_notification_client, get_request_id
from fleet_ledger.api.v1.schemas import (
    AccrualSchema,
    BreakdownSchema,
    ChargeEntrySchema,
    CreateSelectionRequest,
    DailyRentEntrySchema,
    DuesSchema,
    ObligationsResponse,
    PaymentEventSchema,
    RentSummaryResponse,
    SelectionResponse,
    StatusRequest,
    VehicleAssignmentRequest,
)
from fleet_ledger.domain.exceptions import (
    ActiveSelectionExistsError,
    ConcurrencyConflictError,
    InvalidTransitionError,
    SelectionNotFoundError,
    ValidationError,
)
from fleet_ledger.domain.models import AccrualSummary, Dues
from fleet_ledger.infrastructure.clients.notifications import NotificationClient, dispatch_ledger_events
from fleet_ledger.infrastructure.database.models import PaymentEvent, PlanSelection
from fleet_ledger.infrastructure.database.session import get_db
from fleet_ledger.services import selections as selection_service

router = APIRouter()


def dues_schema(dues: Dues) -> DuesSchema:
    return DuesSchema(
        deposit_due_paise=dues.deposit_due_paise,
        rent_due_paise=dues.rent_due_paise,
        accidental_cover_due_paise=dues.accidental_cover_due_paise,
        extra_amount_due_paise=dues.extra_amount_due_paise,
        total_payable_paise=dues.total_payable_paise,
    )


def accrual_schema(accrual: AccrualSummary) -> AccrualSchema:
    return AccrualSchema(
        has_started=accrual.has_started,
        days=accrual.days,
        rent_per_day_paise=accrual.rent_per_day_paise,
        total_rent_paise=accrual.total_rent_paise,
        start_date=accrual.start_date,
        as_of_date=accrual.as_of_date,
    )


def _payment_event_schema(event: PaymentEvent) -> PaymentEventSchema:
    return PaymentEventSchema(
        date=event.created_at,
        amount_paise=event.amount_paise,
        source=event.source,
        mode=event.mode,
        type=event.declared_type,
        breakdown=BreakdownSchema(
            deposit_paise=event.deposit_paise,
            rent_paise=event.rent_paise,
            accidental_cover_paise=event.accidental_cover_paise,
            extra_paise=event.extra_paise,
        ),
        transaction_id=event.transaction_id,
        merchant_order_id=event.merchant_order_id,
        gateway=event.gateway,
        status=event.gateway_status,
    )


def selection_response(selection: PlanSelection, as_of: Optional[datetime] = None) -> SelectionResponse:
    """Full ledger snapshot with dues recomputed as of now"""
    view = selection_service.read_obligations(selection, as_of)
    charges = selection.charge_entries
    return SelectionResponse(
        id=str(selection.id),
        driver_id=selection.driver_id,
        driver_username=selection.driver_username,
        driver_mobile=selection.driver_mobile,
        plan_name=selection.plan_name,
        plan_type=selection.plan_type,
        vehicle_id=selection.vehicle_id,
        status=selection.status,
        security_deposit_paise=selection.security_deposit_paise,
        rent_per_day_paise=selection.rent_per_day_paise,
        accidental_cover_paise=selection_service.accidental_cover_for(selection),
        selected_date=selection.selected_date,
        rent_start_date=selection.rent_start_date,
        rent_paused_date=selection.rent_paused_date,
        deposit_paid_paise=selection.deposit_paid_paise,
        rent_paid_paise=selection.rent_paid_paise,
        accidental_cover_paid_paise=selection.accidental_cover_paid_paise,
        extra_amount_paid_paise=selection.extra_amount_paid_paise,
        paid_amount_paise=selection.paid_amount_paise,
        admin_paid_amount_paise=selection.admin_paid_amount_paise,
        extra_amount_paise=selection.extra_amount_paise,
        adjustment_amount_paise=selection.adjustment_amount_paise,
        extra_amounts=[
            ChargeEntrySchema(amount_paise=c.amount_paise, reason=c.reason, date=c.created_at)
            for c in charges
            if c.kind == "extra"
        ],
        adjustments=[
            ChargeEntrySchema(amount_paise=c.amount_paise, reason=c.reason, date=c.created_at)
            for c in charges
            if c.kind == "adjustment"
        ],
        payment_status=selection.payment_status,
        payment_mode=selection.payment_mode,
        payment_date=selection.payment_date,
        driver_payments=[_payment_event_schema(e) for e in selection.payment_events if e.source != "admin"],
        admin_payments=[_payment_event_schema(e) for e in selection.payment_events if e.source == "admin"],
        dues=dues_schema(view.dues),
        accrual=accrual_schema(view.accrual),
    )


@router.post("/plan-selections", response_model=SelectionResponse, status_code=201)
def create_plan_selection(request_body: CreateSelectionRequest, db: Session = Depends(get_db)):
    """
    Record a driver's plan choice.

    Only one active selection per driver; rent per day and deposit are
    locked from the chosen slab and accrual starts immediately.
    """
    try:
        selection = selection_service.create_selection(
            db,
            driver_mobile=request_body.driver_mobile,
            plan_name=request_body.plan_name,
            plan_type=request_body.plan_type,
            rent_per_day_paise=request_body.rent_per_day_paise,
            security_deposit_paise=request_body.security_deposit_paise,
            accidental_cover_paise=request_body.accidental_cover_paise,
            driver_id=request_body.driver_id,
            driver_username=request_body.driver_username,
            selected_rent_slab=request_body.selected_rent_slab,
        )
    except ActiveSelectionExistsError as e:
        db.rollback()
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    return selection_response(selection)


@router.get("/plan-selections", response_model=List[SelectionResponse])
def list_plan_selections(
    driver_mobile: str = Query(..., min_length=1, description="Driver mobile number"),
    db: Session = Depends(get_db),
):
    """All plan selections for a driver mobile, newest first"""
    selections = selection_service.list_selections_by_mobile(db, driver_mobile)
    return [selection_response(s) for s in selections]


def _load_or_raise(db: Session, selection_id: str) -> PlanSelection:
    try:
        return selection_service.get_selection(db, selection_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SelectionNotFoundError:
        raise HTTPException(status_code=404, detail="Plan selection not found")


@router.get("/plan-selections/{selection_id}", response_model=SelectionResponse)
def get_plan_selection(selection_id: str, db: Session = Depends(get_db)):
    """Retrieve a plan selection with payment histories and current dues"""
    return selection_response(_load_or_raise(db, selection_id))


@router.get("/plan-selections/{selection_id}/obligations", response_model=ObligationsResponse)
def get_obligations(
    selection_id: str,
    as_of: Optional[datetime] = Query(None, description="Defaults to now"),
    db: Session = Depends(get_db),
):
    """
    Read the four dues and the accrual behind them.

    Returns:
        Deposit, rent, accidental cover and extra dues with total payable,
        plus elapsed days, rent per day and gross rent
    """
    selection = _load_or_raise(db, selection_id)
    view = selection_service.read_obligations(selection, as_of)
    return ObligationsResponse(
        selection_id=str(selection.id),
        dues=dues_schema(view.dues),
        accrual=accrual_schema(view.accrual),
    )


@router.get("/plan-selections/{selection_id}/rent-summary", response_model=RentSummaryResponse)
def get_rent_summary(
    selection_id: str,
    as_of: Optional[datetime] = Query(None, description="Defaults to now"),
    db: Session = Depends(get_db),
):
    """Per-day rent entries from the accrual start through as_of"""
    selection = _load_or_raise(db, selection_id)
    accrual, entries = selection_service.rent_summary(selection, as_of)
    return RentSummaryResponse(
        selection_id=str(selection.id),
        status=selection.status,
        accrual=accrual_schema(accrual),
        entries=[DailyRentEntrySchema(date=e.date, amount_paise=e.amount_paise) for e in entries],
    )


@router.put("/plan-selections/{selection_id}/status", response_model=SelectionResponse)
def update_status(
    selection_id: str,
    request_body: StatusRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """Start, pause or complete rent accrual"""
    request_id = get_request_id(request)
    try:
        selection, events = selection_service.change_status(
            db, selection_id, request_body.status, request_id=request_id
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SelectionNotFoundError:
        raise HTTPException(status_code=404, detail="Plan selection not found")
    except (InvalidTransitionError, ConcurrencyConflictError) as e:
        logging.warning(f"Status change rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))

    background_tasks.add_task(dispatch_ledger_events, notifier, events)
    return selection_response(selection)


@router.put("/plan-selections/{selection_id}/vehicle", response_model=SelectionResponse)
def assign_vehicle(
    selection_id: str,
    request_body: VehicleAssignmentRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """Link a vehicle to the selection; starts accrual if not already running"""
    request_id = get_request_id(request)
    try:
        selection, events = selection_service.assign_vehicle(
            db, selection_id, request_body.vehicle_id, request_id=request_id
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SelectionNotFoundError:
        raise HTTPException(status_code=404, detail="Plan selection not found")
    except (InvalidTransitionError, ConcurrencyConflictError) as e:
        logging.warning(f"Vehicle assignment rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))

    background_tasks.add_task(dispatch_ledger_events, notifier, events)
    return selection_response(selection)
