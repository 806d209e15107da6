"""Unit tests for rent accrual"""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from fleet_ledger.domain.accrual import (
    MAX_DAILY_ENTRIES,
    accrual_summary,
    daily_rent_entries,
    elapsed_days,
    rent_due,
)
from fleet_ledger.domain.models import SelectionStatus

IST = ZoneInfo("Asia/Kolkata")


def test_first_day_counts_as_one(make_snapshot, now):
    snapshot = make_snapshot()
    assert elapsed_days(snapshot, now, IST) == 1
    assert rent_due(snapshot, now, IST) == 50_000


def test_days_are_inclusive_of_both_ends(make_snapshot, now):
    """Start Mar 10, as of Mar 12 late evening: 10, 11, 12"""
    snapshot = make_snapshot()
    as_of = datetime(2024, 3, 12, 17, 30, tzinfo=timezone.utc)  # 23:00 IST
    assert elapsed_days(snapshot, as_of, IST) == 3
    assert rent_due(snapshot, as_of, IST) == 150_000


def test_days_follow_business_timezone_midnights(make_snapshot):
    """00:10 IST to 23:30 IST the same local day crosses a UTC midnight"""
    start = datetime(2024, 3, 10, 18, 40, tzinfo=timezone.utc)  # Mar 11 00:10 IST
    as_of = datetime(2024, 3, 11, 18, 0, tzinfo=timezone.utc)  # Mar 11 23:30 IST
    snapshot = make_snapshot(rent_start_date=start)

    assert elapsed_days(snapshot, as_of, IST) == 1
    assert elapsed_days(snapshot, as_of, timezone.utc) == 2


def test_naive_timestamps_are_read_as_utc(make_snapshot):
    snapshot = make_snapshot(rent_start_date=datetime(2024, 3, 10, 3, 30))
    as_of = datetime(2024, 3, 11, 3, 30, tzinfo=timezone.utc)
    assert elapsed_days(snapshot, as_of, IST) == 2


def test_no_start_means_no_accrual(make_snapshot, now):
    snapshot = make_snapshot(rent_start_date=None, status=SelectionStatus.INACTIVE)
    assert elapsed_days(snapshot, now + timedelta(days=5), IST) == 0
    assert rent_due(snapshot, now + timedelta(days=5), IST) == 0
    assert daily_rent_entries(snapshot, now, IST) == []


def test_legacy_active_with_vehicle_falls_back_to_selected_date(make_snapshot, now):
    snapshot = make_snapshot(rent_start_date=None, vehicle_id="KA01AB1234", selected_date=now)
    assert elapsed_days(snapshot, now + timedelta(days=1), IST) == 2


def test_legacy_active_without_vehicle_does_not_accrue(make_snapshot, now):
    snapshot = make_snapshot(rent_start_date=None, selected_date=now)
    assert elapsed_days(snapshot, now + timedelta(days=1), IST) == 0


def test_inactive_selection_is_frozen_at_pause(make_snapshot, now):
    snapshot = make_snapshot(
        status=SelectionStatus.INACTIVE,
        rent_paused_date=now + timedelta(days=2),
    )
    assert elapsed_days(snapshot, now + timedelta(days=30), IST) == 3


def test_completed_selection_is_frozen_at_pause(make_snapshot, now):
    snapshot = make_snapshot(
        status=SelectionStatus.COMPLETED,
        rent_paused_date=now + timedelta(days=4),
    )
    assert rent_due(snapshot, now + timedelta(days=30), IST) == 5 * 50_000


def test_end_before_start_still_bills_one_day(make_snapshot, now):
    snapshot = make_snapshot()
    assert elapsed_days(snapshot, now - timedelta(days=3), IST) == 1


def test_accrual_summary(make_snapshot, now):
    summary = accrual_summary(make_snapshot(), now + timedelta(days=2), IST)

    assert summary.has_started is True
    assert summary.days == 3
    assert summary.total_rent_paise == 150_000
    assert summary.start_date == date(2024, 3, 10)
    assert summary.as_of_date == date(2024, 3, 12)


def test_daily_rent_entries_one_per_billable_day(make_snapshot, now):
    entries = daily_rent_entries(make_snapshot(), now + timedelta(days=2), IST)

    assert [e.date for e in entries] == [date(2024, 3, 10), date(2024, 3, 11), date(2024, 3, 12)]
    assert all(e.amount_paise == 50_000 for e in entries)


def test_daily_rent_entries_are_capped(make_snapshot, now):
    entries = daily_rent_entries(make_snapshot(), now + timedelta(days=MAX_DAILY_ENTRIES + 100), IST)
    assert len(entries) == MAX_DAILY_ENTRIES
