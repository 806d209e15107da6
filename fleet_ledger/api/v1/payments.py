"""Driver confirmations, online checkout callbacks and admin payment records"""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from fleet_ledger.api.dependencies import get_notification_client, get_request_id
from fleet_ledger.api.v1.schemas import (
    AdminPaymentRequest,
    BreakdownSchema,
    DriverPaymentRequest,
    OnlinePaymentRequest,
    PaymentResponse,
)
from fleet_ledger.api.v1.selections import selection_response
from fleet_ledger.domain.exceptions import ConcurrencyConflictError, SelectionNotFoundError, ValidationError
from fleet_ledger.domain.models import Breakdown
from fleet_ledger.infrastructure.clients.notifications import NotificationClient, dispatch_ledger_events
from fleet_ledger.infrastructure.database.session import get_db
from fleet_ledger.services.recorders import confirm_driver_payment, record_admin_payment, record_gateway_payment
from fleet_ledger.services.selections import get_selection
from fleet_ledger.utils.money import optional_rupees_to_paise, rupees_to_paise

router = APIRouter()


def _breakdown_schema(breakdown: Breakdown) -> BreakdownSchema:
    return BreakdownSchema(
        deposit_paise=breakdown.deposit_paise,
        rent_paise=breakdown.rent_paise,
        accidental_cover_paise=breakdown.accidental_cover_paise,
        extra_paise=breakdown.extra_paise,
    )


@router.post("/plan-selections/{selection_id}/confirm-payment", response_model=PaymentResponse)
def confirm_payment(
    selection_id: str,
    request_body: DriverPaymentRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """
    Driver confirms a payment against their plan.

    An undeclared payment type is spread over the obligations in waterfall
    order; rent or security routes to that obligation first.
    """
    request_id = get_request_id(request)
    try:
        result = confirm_driver_payment(
            db,
            selection_id,
            payment_mode=request_body.payment_mode,
            paid_amount_paise=request_body.paid_amount_paise,
            payment_type=request_body.payment_type,
            request_id=request_id,
        )
    except ValidationError as e:
        logging.warning(f"Driver payment rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))
    except SelectionNotFoundError:
        raise HTTPException(status_code=404, detail="Plan selection not found")
    except ConcurrencyConflictError as e:
        logging.error(f"Driver payment conflict: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))

    background_tasks.add_task(dispatch_ledger_events, notifier, result.events)
    return PaymentResponse(
        message="Payment confirmed successfully",
        breakdown=_breakdown_schema(result.breakdown) if result.breakdown else None,
        selection=selection_response(result.selection),
    )


@router.patch("/plan-selections/{selection_id}", response_model=PaymentResponse)
def admin_update(
    selection_id: str,
    request_body: AdminPaymentRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """Admin records a payment, an extra charge or an adjustment"""
    request_id = get_request_id(request)
    try:
        result = record_admin_payment(
            db,
            selection_id,
            admin_paid_amount_paise=request_body.admin_paid_amount_paise,
            admin_payment_type=request_body.admin_payment_type,
            extra_amount_paise=request_body.extra_amount_paise,
            extra_reason=request_body.extra_reason,
            adjustment_amount_paise=request_body.adjustment_amount_paise,
            adjustment_reason=request_body.adjustment_reason,
            payment_status=request_body.payment_status,
            request_id=request_id,
        )
    except ValidationError as e:
        logging.warning(f"Admin update rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))
    except SelectionNotFoundError:
        raise HTTPException(status_code=404, detail="Plan selection not found")
    except ConcurrencyConflictError as e:
        logging.error(f"Admin update conflict: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))

    background_tasks.add_task(dispatch_ledger_events, notifier, result.events)
    return PaymentResponse(
        message="Plan selection updated successfully",
        breakdown=_breakdown_schema(result.breakdown) if result.breakdown else None,
        selection=selection_response(result.selection),
    )


@router.post("/plan-selections/{selection_id}/online-payment", response_model=PaymentResponse)
def record_online_payment(
    selection_id: str,
    request_body: OnlinePaymentRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """
    Client-side checkout callback.

    Credits through the same idempotent path as the gateway webhook, so
    whichever of the two arrives second is reported as already recorded.
    Non-captured payments leave the ledger untouched.
    """
    request_id = get_request_id(request)
    try:
        if request_body.status != "captured":
            logging.info(
                f"Online payment not captured: {request_body.status}",
                extra={"request_id": request_id, "gateway_payment_id": request_body.payment_id},
            )
            return PaymentResponse(
                message="Payment not captured; ledger unchanged",
                selection=selection_response(get_selection(db, selection_id)),
            )

        result = record_gateway_payment(
            db,
            selection_id,
            gateway_payment_id=request_body.payment_id,
            amount_paise=rupees_to_paise(request_body.amount),
            payment_type=request_body.payment_type,
            deposit_amount_paise=optional_rupees_to_paise(request_body.deposit_amount),
            rent_amount_paise=optional_rupees_to_paise(request_body.rent_amount),
            merchant_order_id=request_body.merchant_order_id,
            payment_token=request_body.payment_token,
            gateway=request_body.gateway,
        )
    except ValidationError as e:
        logging.warning(f"Online payment rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail=str(e))
    except SelectionNotFoundError:
        raise HTTPException(status_code=404, detail="Plan selection not found")
    except ConcurrencyConflictError as e:
        logging.error(f"Online payment conflict: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))

    if result.duplicate:
        return PaymentResponse(
            message="Payment already recorded",
            selection=selection_response(result.selection),
        )

    background_tasks.add_task(dispatch_ledger_events, notifier, result.events)
    return PaymentResponse(
        message="Online payment recorded successfully",
        breakdown=_breakdown_schema(result.breakdown),
        selection=selection_response(result.selection),
    )
