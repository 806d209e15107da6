"""Data access layer for plan selections and the payment ledger"""

import uuid
from typing import List, Optional
from sqlalchemy.orm import Session
from fleet_ledger.infrastructure.database.models import (
    ChargeEntry,
    GatewayWebhookEvent,
    PaymentEvent,
    PlanSelection,
    ProcessedGatewayPayment,
)
from fleet_ledger.domain.models import (
    Breakdown,
    LedgerSnapshot,
    PaymentSource,
    PlanType,
    SelectionStatus,
)


def to_snapshot(selection: PlanSelection) -> LedgerSnapshot:
    """Detach the ledger-relevant fields of a stored selection"""
    return LedgerSnapshot(
        plan_type=PlanType(selection.plan_type),
        status=SelectionStatus(selection.status),
        security_deposit_paise=selection.security_deposit_paise or 0,
        rent_per_day_paise=selection.rent_per_day_paise or 0,
        accidental_cover_paise=selection.accidental_cover_paise or 0,
        vehicle_id=selection.vehicle_id,
        selected_date=selection.selected_date,
        created_at=selection.created_at,
        rent_start_date=selection.rent_start_date,
        rent_paused_date=selection.rent_paused_date,
        deposit_paid_paise=selection.deposit_paid_paise or 0,
        rent_paid_paise=selection.rent_paid_paise or 0,
        accidental_cover_paid_paise=selection.accidental_cover_paid_paise or 0,
        extra_amount_paid_paise=selection.extra_amount_paid_paise or 0,
        extra_amount_paise=selection.extra_amount_paise or 0,
        adjustment_amount_paise=selection.adjustment_amount_paise or 0,
    )


class PlanSelectionRepository:
    """Repository for plan selections and their append-only histories"""

    def __init__(self, db: Session):
        self.db = db

    def create_selection(self, **fields) -> PlanSelection:
        """Persist a new plan selection"""
        selection = PlanSelection(**fields)
        self.db.add(selection)
        self.db.flush()  # Get ID without committing
        return selection

    def get_by_id(self, selection_id: uuid.UUID) -> Optional[PlanSelection]:
        return (
            self.db.query(PlanSelection)
            .filter(PlanSelection.id == selection_id)
            .first()
        )

    def get_active_for_driver(self, driver_id: Optional[str], driver_mobile: str) -> Optional[PlanSelection]:
        """Match by driver id when known, else by the denormalized mobile"""
        query = self.db.query(PlanSelection).filter(PlanSelection.status == SelectionStatus.ACTIVE.value)
        if driver_id:
            query = query.filter(PlanSelection.driver_id == driver_id)
        else:
            query = query.filter(PlanSelection.driver_mobile == driver_mobile)
        return query.first()

    def list_by_mobile(self, driver_mobile: str, limit: int = 50) -> List[PlanSelection]:
        """Fetch a driver's selections, newest first"""
        return (
            self.db.query(PlanSelection)
            .filter(PlanSelection.driver_mobile == driver_mobile)
            .order_by(PlanSelection.selected_date.desc())
            .limit(limit)
            .all()
        )

    def add_payment_event(
        self,
        selection: PlanSelection,
        source: PaymentSource,
        mode: str,
        declared_type: Optional[str],
        breakdown: Breakdown,
        **gateway_fields,
    ) -> PaymentEvent:
        """Append a payment event; events are never updated afterwards"""
        event = PaymentEvent(
            source=source.value,
            mode=mode,
            declared_type=declared_type,
            amount_paise=breakdown.total_paise,
            deposit_paise=breakdown.deposit_paise,
            rent_paise=breakdown.rent_paise,
            accidental_cover_paise=breakdown.accidental_cover_paise,
            extra_paise=breakdown.extra_paise,
            **gateway_fields,
        )
        selection.payment_events.append(event)
        return event

    def add_charge_entry(self, selection: PlanSelection, kind: str, amount_paise: int, reason: str) -> ChargeEntry:
        entry = ChargeEntry(kind=kind, amount_paise=amount_paise, reason=reason)
        selection.charge_entries.append(entry)
        return entry


class GatewayPaymentRepository:
    """Repository for the processed gateway transaction id set"""

    def __init__(self, db: Session):
        self.db = db

    def is_processed(self, gateway_payment_id: str) -> bool:
        return (
            self.db.query(ProcessedGatewayPayment)
            .filter(ProcessedGatewayPayment.gateway_payment_id == gateway_payment_id)
            .first()
            is not None
        )

    def mark_processed(self, gateway_payment_id: str, selection_id: uuid.UUID) -> None:
        """Insert the id; a concurrent duplicate fails on the primary key at commit"""
        self.db.add(
            ProcessedGatewayPayment(gateway_payment_id=gateway_payment_id, selection_id=selection_id)
        )


class WebhookEventRepository:
    """Repository for the inbound gateway webhook inbox"""

    def __init__(self, db: Session):
        self.db = db

    def create_event(
        self,
        gateway_payment_id: str,
        gateway_status: str,
        payload: dict,
        merchant_order_id: Optional[str] = None,
        selection_ref: Optional[str] = None,
    ) -> GatewayWebhookEvent:
        event = GatewayWebhookEvent(
            gateway_payment_id=gateway_payment_id,
            gateway_status=gateway_status,
            payload=payload,
            merchant_order_id=merchant_order_id,
            selection_ref=selection_ref,
        )
        self.db.add(event)
        self.db.flush()
        return event

    def get_by_id(self, event_id: uuid.UUID) -> Optional[GatewayWebhookEvent]:
        return (
            self.db.query(GatewayWebhookEvent)
            .filter(GatewayWebhookEvent.id == event_id)
            .first()
        )

    def list_failed(self, limit: int = 50) -> List[GatewayWebhookEvent]:
        """Operator queue: deliveries that could not be applied"""
        return (
            self.db.query(GatewayWebhookEvent)
            .filter(GatewayWebhookEvent.processing_status == "failed")
            .order_by(GatewayWebhookEvent.created_at.desc())
            .limit(limit)
            .all()
        )
