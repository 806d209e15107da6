"""Shared plumbing for ledger services: id parsing, loading and conflict retry"""

import logging
import uuid
from typing import Callable, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fleet_ledger.config import settings
from fleet_ledger.domain.exceptions import (
    ConcurrencyConflictError,
    SelectionNotFoundError,
    ValidationError,
)
from fleet_ledger.infrastructure.database.models import PlanSelection
from fleet_ledger.infrastructure.database.repositories import PlanSelectionRepository
from fleet_ledger.infrastructure.observability.metrics import ledger_conflict_counter

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_selection_id(selection_id: str | uuid.UUID) -> uuid.UUID:
    if isinstance(selection_id, uuid.UUID):
        return selection_id
    try:
        return uuid.UUID(str(selection_id))
    except ValueError:
        raise ValidationError("Invalid plan selection ID")


def load_selection(db: Session, selection_id: uuid.UUID) -> PlanSelection:
    selection = PlanSelectionRepository(db).get_by_id(selection_id)
    if selection is None:
        raise SelectionNotFoundError(f"Plan selection {selection_id} not found")
    return selection


def run_with_conflict_retry(db: Session, operation: Callable[[], T], max_attempts: int | None = None) -> T:
    """
    Run a read-modify-write operation and commit it under the version check.

    The operation must (re)load everything it mutates, since a conflict rolls
    the session back and expires loaded state before the next attempt.

    Raises:
        ConcurrencyConflictError: Every attempt lost the race
    """
    attempts = max_attempts or settings.ledger_write_max_retries
    for attempt in range(1, attempts + 1):
        try:
            result = operation()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            ledger_conflict_counter.inc()
            logger.warning(f"Plan selection write conflict (attempt {attempt}/{attempts})")
        except Exception:
            db.rollback()
            raise

    raise ConcurrencyConflictError("Plan selection was modified concurrently; retry the request")
