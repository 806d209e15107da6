"""/v1/webhooks/gateway - payment gateway callbacks and the operator replay queue"""

import uuid
import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session, sessionmaker

from fleet_ledger.api.dependencies import get_notification_client, get_request_id
from fleet_ledger.api.v1.schemas import (
    GatewayWebhookPayload,
    WebhookAck,
    WebhookEventSchema,
    WebhookReplayResponse,
)
from fleet_ledger.infrastructure.clients.notifications import NotificationClient, dispatch_ledger_events
from fleet_ledger.infrastructure.database.models import GatewayWebhookEvent
from fleet_ledger.infrastructure.database.repositories import WebhookEventRepository
from fleet_ledger.infrastructure.database.session import get_db, get_session_factory
from fleet_ledger.services.webhooks import (
    handle_gateway_webhook,
    process_webhook_event,
    receive_webhook,
    reset_for_replay,
)

router = APIRouter()


def _event_schema(event: GatewayWebhookEvent) -> WebhookEventSchema:
    return WebhookEventSchema(
        event_id=str(event.id),
        gateway_payment_id=event.gateway_payment_id,
        selection_ref=event.selection_ref,
        gateway_status=event.gateway_status,
        processing_status=event.processing_status,
        attempts=event.attempts or 0,
        last_error=event.last_error,
        created_at=event.created_at,
    )


@router.post("/webhooks/gateway", response_model=WebhookAck)
async def receive_gateway_webhook(
    payload: GatewayWebhookPayload,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """
    Accept a gateway payment callback.

    The delivery is stored before it is acknowledged; crediting the ledger
    happens in a background task. If the store fails the gateway gets a 5xx
    and redelivers.
    """
    request_id = get_request_id(request)
    try:
        event = receive_webhook(db, payload.model_dump(mode="json"))
    except Exception as e:
        db.rollback()
        logging.error(f"Webhook store failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    logging.info(
        "Gateway webhook received",
        extra={
            "request_id": request_id,
            "event_id": str(event.id),
            "gateway_payment_id": payload.payment_id,
            "gateway_status": payload.status,
        },
    )
    background_tasks.add_task(handle_gateway_webhook, event.id, session_factory, notifier)
    return WebhookAck(event_id=str(event.id))


@router.get("/webhooks/gateway/failed", response_model=List[WebhookEventSchema])
def list_failed_webhooks(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Deliveries that could not be applied, newest first"""
    return [_event_schema(e) for e in WebhookEventRepository(db).list_failed(limit)]


@router.post("/webhooks/gateway/{event_id}/replay", response_model=WebhookReplayResponse)
def replay_webhook(
    event_id: str,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """Re-run a failed delivery; the processed-id check still prevents a double credit"""
    try:
        eid = uuid.UUID(event_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid webhook event ID")

    event = WebhookEventRepository(db).get_by_id(eid)
    if event is None:
        raise HTTPException(status_code=404, detail="Webhook event not found")
    if event.processing_status != "failed":
        raise HTTPException(
            status_code=409,
            detail=f"Only failed deliveries can be replayed (status: {event.processing_status})",
        )

    reset_for_replay(db, event)
    outcome = process_webhook_event(db, eid)
    logging.info(
        f"Webhook replay finished: {outcome.outcome}",
        extra={"request_id": get_request_id(request), "event_id": event_id},
    )

    background_tasks.add_task(dispatch_ledger_events, notifier, outcome.events)
    return WebhookReplayResponse(event_id=outcome.event_id, outcome=outcome.outcome, error=outcome.error)
