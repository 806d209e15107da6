"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from fleet_ledger.domain.models import Breakdown
from fleet_ledger.utils.money import paise_to_rupees


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "fleet-ledger"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_payment_recorded(
    selection_id: str,
    source: str,
    declared_type: Optional[str],
    breakdown: Breakdown,
    request_id: Optional[str] = None,
) -> None:
    """Log structured payment allocation for reconciliation"""
    logging.info(
        "Payment recorded",
        extra={
            "request_id": request_id,
            "selection_id": selection_id,
            "step": "payment_recorded",
            "source": source,
            "declared_type": declared_type or "total",
            "amount_rupees": str(paise_to_rupees(breakdown.total_paise)),
            "deposit_paise": breakdown.deposit_paise,
            "rent_paise": breakdown.rent_paise,
            "accidental_cover_paise": breakdown.accidental_cover_paise,
            "extra_paise": breakdown.extra_paise,
        },
    )


def log_status_change(selection_id: str, previous: str, target: str, request_id: Optional[str] = None) -> None:
    logging.info(
        "Plan selection status changed",
        extra={
            "request_id": request_id,
            "selection_id": selection_id,
            "step": "status_change",
            "previous_status": previous,
            "status": target,
        },
    )


def log_webhook_outcome(event_id: str, gateway_payment_id: str, outcome: str, error: Optional[str] = None) -> None:
    level = logging.ERROR if outcome == "failed" else logging.INFO
    logging.log(
        level,
        "Gateway webhook processed",
        extra={
            "event_id": event_id,
            "gateway_payment_id": gateway_payment_id,
            "step": "webhook_processed",
            "outcome": outcome,
            "error": error,
        },
    )
