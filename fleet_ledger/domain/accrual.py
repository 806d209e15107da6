"""Rent accrual - billable days and rent owed for elapsed active-rental time"""

from datetime import datetime, timedelta, timezone, tzinfo
from typing import List, Optional

from fleet_ledger.domain.models import (
    AccrualSummary,
    DailyRentEntry,
    LedgerSnapshot,
    SelectionStatus,
)
from fleet_ledger.utils.date_utils import generate_date_range, local_date

# Safety cap on per-day listings (~10 years)
MAX_DAILY_ENTRIES = 3660

# Statuses whose accrual clock stops at the paused stamp
_FROZEN_STATUSES = (SelectionStatus.INACTIVE, SelectionStatus.COMPLETED)


def effective_start(snapshot: LedgerSnapshot) -> Optional[datetime]:
    """
    Resolve when accrual began.

    Falls back to the selection/creation time for legacy active records that
    have a vehicle but never got a start stamp. Returns None when there is no
    accrual at all.
    """
    if snapshot.rent_start_date is not None:
        return snapshot.rent_start_date
    if snapshot.status == SelectionStatus.ACTIVE and snapshot.vehicle_id:
        return snapshot.selected_date or snapshot.created_at
    return None


def effective_end(snapshot: LedgerSnapshot, as_of: datetime) -> datetime:
    if snapshot.status in _FROZEN_STATUSES and snapshot.rent_paused_date is not None:
        return snapshot.rent_paused_date
    return as_of


def elapsed_days(snapshot: LedgerSnapshot, as_of: datetime, tz: tzinfo = timezone.utc) -> int:
    """
    Inclusive count of billable days between start and end local midnights.

    Both ends count, so accrual on its first day is 1. Clamped to 1 whenever
    a start exists (an end before the start still bills one day).
    """
    start = effective_start(snapshot)
    if start is None:
        return 0

    start_day = local_date(start, tz)
    end_day = local_date(effective_end(snapshot, as_of), tz)
    days = (end_day - start_day).days + 1
    return max(1, days)


def rent_due(snapshot: LedgerSnapshot, as_of: datetime, tz: tzinfo = timezone.utc) -> int:
    """Gross rent accrued (before payments and adjustments)"""
    return elapsed_days(snapshot, as_of, tz) * snapshot.rent_per_day_paise


def accrual_summary(snapshot: LedgerSnapshot, as_of: datetime, tz: tzinfo = timezone.utc) -> AccrualSummary:
    start = effective_start(snapshot)
    days = elapsed_days(snapshot, as_of, tz)
    return AccrualSummary(
        has_started=start is not None,
        days=days,
        rent_per_day_paise=snapshot.rent_per_day_paise,
        total_rent_paise=days * snapshot.rent_per_day_paise,
        start_date=local_date(start, tz) if start is not None else None,
        as_of_date=local_date(effective_end(snapshot, as_of), tz),
    )


def daily_rent_entries(
    snapshot: LedgerSnapshot,
    as_of: datetime,
    tz: tzinfo = timezone.utc,
) -> List[DailyRentEntry]:
    """One entry per billable day, oldest first"""
    days = min(elapsed_days(snapshot, as_of, tz), MAX_DAILY_ENTRIES)
    if days == 0:
        return []

    start_day = local_date(effective_start(snapshot), tz)
    dates = generate_date_range(start_day, start_day + timedelta(days=days - 1))
    return [DailyRentEntry(date=day, amount_paise=snapshot.rent_per_day_paise) for day in dates]
