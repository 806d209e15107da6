"""Gateway webhook inbox - durable receipt, background processing, operator replay"""

import logging
import uuid
from dataclasses import dataclass, field
from decimal import InvalidOperation
from typing import List, Optional

from sqlalchemy.orm import Session, sessionmaker

from fleet_ledger.config import settings
from fleet_ledger.domain.exceptions import ConcurrencyConflictError, DomainException
from fleet_ledger.domain.models import LedgerEvent, PaymentType
from fleet_ledger.infrastructure.clients.notifications import NotificationClient, dispatch_ledger_events
from fleet_ledger.infrastructure.database.models import GatewayWebhookEvent
from fleet_ledger.infrastructure.database.repositories import WebhookEventRepository
from fleet_ledger.infrastructure.observability.logging import log_webhook_outcome
from fleet_ledger.infrastructure.observability.metrics import gateway_webhook_counter
from fleet_ledger.services.recorders import record_gateway_payment
from fleet_ledger.utils.date_utils import utc_now
from fleet_ledger.utils.money import optional_rupees_to_paise, rupees_to_paise

logger = logging.getLogger(__name__)

CAPTURED = "captured"
_SETTLED = ("processed", "duplicate", "ignored")


@dataclass
class WebhookOutcome:
    event_id: str
    outcome: str  # processed | duplicate | ignored | failed
    events: List[LedgerEvent] = field(default_factory=list)
    error: Optional[str] = None


def receive_webhook(db: Session, payload: dict) -> GatewayWebhookEvent:
    """Store a delivery before acknowledging it to the gateway"""
    event = WebhookEventRepository(db).create_event(
        gateway_payment_id=str(payload["payment_id"]),
        gateway_status=payload["status"],
        payload=payload,
        merchant_order_id=payload.get("merchant_order_id"),
        selection_ref=payload.get("udf2"),
    )
    db.commit()
    return event


def _credit(db: Session, event: GatewayWebhookEvent) -> WebhookOutcome:
    payload = event.payload
    if not event.selection_ref:
        return WebhookOutcome(str(event.id), "failed", error="Missing plan selection reference")

    try:
        amount_paise = rupees_to_paise(payload["amount"])
        deposit_paise = optional_rupees_to_paise(payload.get("deposit_amount"))
        rent_paise = optional_rupees_to_paise(payload.get("rent_amount"))
        payment_type = PaymentType(payload["udf3"]) if payload.get("udf3") else None
    except (InvalidOperation, ValueError, KeyError) as e:
        return WebhookOutcome(str(event.id), "failed", error=f"Malformed payload: {e}")

    result = record_gateway_payment(
        db,
        selection_id=event.selection_ref,
        gateway_payment_id=event.gateway_payment_id,
        amount_paise=amount_paise,
        payment_type=payment_type,
        deposit_amount_paise=deposit_paise,
        rent_amount_paise=rent_paise,
        merchant_order_id=event.merchant_order_id,
        payment_token=payload.get("payment_token"),
        gateway=payload.get("gateway"),
        gateway_status=event.gateway_status,
    )
    if result.duplicate:
        return WebhookOutcome(str(event.id), "duplicate")
    return WebhookOutcome(str(event.id), "processed", events=result.events)


def process_webhook_event(db: Session, event_id: uuid.UUID) -> WebhookOutcome:
    """
    Apply one stored delivery to the ledger.

    Only captured payments mutate the ledger. Write conflicts are retried
    here up to settings.webhook_max_processing_attempts; anything else that
    goes wrong parks the event as failed for operator replay, since the
    gateway has already been told the delivery was received.
    """
    repo = WebhookEventRepository(db)
    event = repo.get_by_id(event_id)
    if event is None:
        return WebhookOutcome(str(event_id), "failed", error="Webhook event not found")
    if event.processing_status in _SETTLED:
        return WebhookOutcome(str(event.id), event.processing_status)

    if event.gateway_status != CAPTURED:
        outcome = WebhookOutcome(str(event.id), "ignored")
    else:
        outcome = None
        for _ in range(settings.webhook_max_processing_attempts):
            event.attempts = (event.attempts or 0) + 1
            event.last_attempt_at = utc_now()
            db.commit()
            try:
                outcome = _credit(db, event)
                break
            except ConcurrencyConflictError as e:
                outcome = WebhookOutcome(str(event.id), "failed", error=str(e))
            except DomainException as e:
                outcome = WebhookOutcome(str(event.id), "failed", error=str(e))
                break
            except Exception as e:
                # Already acknowledged to the gateway: park it for replay
                db.rollback()
                logger.exception("Gateway webhook processing error", extra={"event_id": str(event_id)})
                outcome = WebhookOutcome(str(event_id), "failed", error=str(e))
                break

    event.processing_status = outcome.outcome
    event.last_error = outcome.error
    db.commit()

    gateway_webhook_counter.labels(outcome=outcome.outcome).inc()
    log_webhook_outcome(outcome.event_id, event.gateway_payment_id, outcome.outcome, outcome.error)
    return outcome


def reset_for_replay(db: Session, event: GatewayWebhookEvent) -> None:
    """Put a failed delivery back in the queue"""
    event.processing_status = "received"
    event.last_error = None
    db.commit()


async def handle_gateway_webhook(
    event_id: uuid.UUID,
    session_factory: sessionmaker,
    notifier: NotificationClient,
) -> None:
    """Background task run after the gateway has been acknowledged"""
    db = session_factory()
    try:
        outcome = process_webhook_event(db, event_id)
    except Exception:
        db.rollback()
        logger.exception("Gateway webhook processing crashed", extra={"event_id": str(event_id)})
        return
    finally:
        db.close()

    await dispatch_ledger_events(notifier, outcome.events)
