"""Notification dispatcher client with exponential backoff retry logic"""

import asyncio
import logging
from typing import Iterable

import httpx

from fleet_ledger.config import settings
from fleet_ledger.domain.exceptions import NotificationDeliveryError
from fleet_ledger.domain.models import LedgerEvent
from fleet_ledger.infrastructure.observability.metrics import (
    notification_failure_counter,
    notification_latency_histogram,
)

logger = logging.getLogger(__name__)


class NotificationClient:
    """Client for handing ledger events to the notification dispatcher"""

    def __init__(
        self,
        dispatch_url: str | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.dispatch_url = dispatch_url or settings.notification_dispatch_url
        self.max_retries = max_retries or settings.notification_max_retries
        self.backoff_base = settings.notification_backoff_base if backoff_base is None else backoff_base
        self.timeout = settings.http_timeout_seconds
        self.transport = transport

    async def send_ledger_event(self, event: LedgerEvent) -> None:
        """
        Post one ledger event to the dispatcher with retry logic.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base ... (base * 2^(attempt-1))
        - Retries on HTTP error statuses and network failures
        - Tracks latency histogram and failure counter

        Raises:
            NotificationDeliveryError: After the final attempt fails
        """
        attempt = 0
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            while attempt < self.max_retries:
                try:
                    with notification_latency_histogram.time():
                        response = await client.post(self.dispatch_url, json=event.to_payload())
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    notification_failure_counter.inc()

                    if attempt >= self.max_retries:
                        raise NotificationDeliveryError(
                            f"Dispatcher unreachable after {attempt} attempts: {e}"
                        ) from e

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)


async def dispatch_ledger_events(client: NotificationClient, events: Iterable[LedgerEvent]) -> None:
    """
    Deliver events one by one. Delivery failures are logged and dropped;
    the ledger write they describe is already committed.
    """
    for event in events:
        try:
            await client.send_ledger_event(event)
        except NotificationDeliveryError as e:
            logger.warning(
                f"Notification dropped: {e}",
                extra={"selection_id": event.selection_id, "event_type": event.event_type},
            )
