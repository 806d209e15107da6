"""Integration tests for the ledger services against a real session"""

from datetime import timedelta

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from fleet_ledger.domain.exceptions import (
    ActiveSelectionExistsError,
    ConcurrencyConflictError,
    InvalidTransitionError,
    RentRateLockedError,
    SelectionNotFoundError,
    ValidationError,
)
from fleet_ledger.domain.models import PaymentMode, PaymentType, PlanType, SelectionStatus
from fleet_ledger.infrastructure.database.models import PlanSelection
from fleet_ledger.infrastructure.database.repositories import GatewayPaymentRepository, WebhookEventRepository
from fleet_ledger.services.common import load_selection, run_with_conflict_retry
from fleet_ledger.services.recorders import (
    confirm_driver_payment,
    record_admin_payment,
    record_gateway_payment,
)
from fleet_ledger.services.selections import (
    assign_vehicle,
    change_status,
    create_selection,
    read_obligations,
)
from fleet_ledger.services import webhooks
from fleet_ledger.services.webhooks import (
    handle_gateway_webhook,
    process_webhook_event,
    receive_webhook,
    reset_for_replay,
)
from fleet_ledger.utils.date_utils import ensure_utc


@pytest.fixture
def selection(db, now) -> PlanSelection:
    """Daily plan: 5000 deposit, 500 per day, started at `now`"""
    return create_selection(
        db,
        driver_mobile="9876543210",
        driver_id="drv_42",
        plan_name="Daily Saver",
        plan_type=PlanType.DAILY,
        rent_per_day_paise=50_000,
        security_deposit_paise=500_000,
        now=now,
    )


def test_new_selection_starts_accruing(selection, now):
    assert selection.status == "active"
    assert ensure_utc(selection.rent_start_date) == now
    assert selection.accidental_cover_paise == 0

    view = read_obligations(selection, now)
    assert view.dues.total_payable_paise == 550_000
    assert view.accrual.days == 1


def test_weekly_selection_defaults_accidental_cover(db, now):
    weekly = create_selection(
        db,
        driver_mobile="9000000001",
        plan_name="Weekly Flex",
        plan_type=PlanType.WEEKLY,
        rent_per_day_paise=45_000,
        now=now,
    )
    assert weekly.accidental_cover_paise == 10_500


def test_second_active_selection_is_rejected(db, selection, now):
    with pytest.raises(ActiveSelectionExistsError):
        create_selection(
            db,
            driver_mobile="9876543210",
            driver_id="drv_42",
            plan_name="Another",
            plan_type=PlanType.DAILY,
            rent_per_day_paise=40_000,
            now=now,
        )


def test_rent_rate_is_locked(selection):
    with pytest.raises(RentRateLockedError):
        selection.rent_per_day_paise = 60_000


def test_admin_total_payment_waterfalls_deposit_then_rent(db, selection, now):
    """Day 3: deposit due 5000, rent due 1500; 6000 paid"""
    result = record_admin_payment(
        db,
        str(selection.id),
        admin_paid_amount_paise=600_000,
        admin_payment_type=PaymentType.TOTAL,
        now=now + timedelta(days=2),
    )

    assert result.breakdown.deposit_paise == 500_000
    assert result.breakdown.rent_paise == 100_000
    assert result.selection.admin_paid_amount_paise == 600_000
    assert result.selection.payment_mode == "cash"

    view = read_obligations(result.selection, now + timedelta(days=2))
    assert view.dues.deposit_due_paise == 0
    assert view.dues.rent_due_paise == 50_000

    [event] = result.selection.payment_events
    assert event.source == "admin"
    assert event.declared_type == "total"
    assert (event.deposit_paise, event.rent_paise) == (500_000, 100_000)


def test_admin_extra_and_adjustment_are_booked_before_payment(db, selection, now):
    result = record_admin_payment(
        db,
        str(selection.id),
        admin_paid_amount_paise=600_000,
        extra_amount_paise=20_000,
        extra_reason="Challan",
        adjustment_amount_paise=50_000,
        adjustment_reason="Service downtime",
        now=now + timedelta(days=2),
    )

    # rent due 150000 - 50000 adjustment = 100000
    assert result.breakdown.deposit_paise == 500_000
    assert result.breakdown.rent_paise == 100_000
    assert [e.event_type for e in result.events] == ["extra_amount_added", "adjustment_added", "admin_payment"]
    assert {c.kind for c in result.selection.charge_entries} == {"extra", "adjustment"}

    view = read_obligations(result.selection, now + timedelta(days=2))
    assert view.dues.extra_amount_due_paise == 20_000
    assert view.dues.rent_due_paise == 0


def test_admin_update_with_nothing_to_do_is_rejected(db, selection):
    with pytest.raises(ValidationError):
        record_admin_payment(db, str(selection.id))


def test_driver_confirmations_accumulate(db, selection, now):
    first = confirm_driver_payment(
        db, str(selection.id), PaymentMode.ONLINE, paid_amount_paise=20_000, payment_type=PaymentType.RENT, now=now
    )
    second = confirm_driver_payment(
        db, str(selection.id), PaymentMode.ONLINE, paid_amount_paise=20_000, payment_type=PaymentType.RENT, now=now
    )

    assert first.breakdown.rent_paise == 20_000
    assert second.selection.rent_paid_paise == 40_000
    assert second.selection.paid_amount_paise == 40_000
    assert second.selection.payment_status == "completed"
    assert len(second.selection.payment_events) == 2
    assert read_obligations(second.selection, now).dues.rent_due_paise == 10_000


def test_driver_confirmation_without_amount_only_marks_status(db, selection, now):
    result = confirm_driver_payment(db, str(selection.id), PaymentMode.CASH, now=now)

    assert result.breakdown is None
    assert result.events == []
    assert result.selection.payment_status == "completed"
    assert result.selection.payment_events == []


def test_driver_cannot_declare_total(db, selection):
    with pytest.raises(ValidationError):
        confirm_driver_payment(
            db, str(selection.id), PaymentMode.CASH, paid_amount_paise=1_000, payment_type=PaymentType.TOTAL
        )


def test_unknown_selection(db):
    with pytest.raises(SelectionNotFoundError):
        confirm_driver_payment(db, "00000000-0000-0000-0000-000000000000", PaymentMode.CASH, paid_amount_paise=100)
    with pytest.raises(ValidationError):
        confirm_driver_payment(db, "not-a-uuid", PaymentMode.CASH, paid_amount_paise=100)


def test_gateway_split_is_rescaled(db, selection, now):
    result = record_gateway_payment(
        db,
        str(selection.id),
        gateway_payment_id="pay_001",
        amount_paise=100_000,
        deposit_amount_paise=30_000,
        rent_amount_paise=80_000,
        now=now,
    )

    assert result.breakdown.deposit_paise == 27_273
    assert result.breakdown.rent_paise == 72_727
    [event] = result.selection.payment_events
    assert event.transaction_id == "pay_001"
    assert event.gateway == "ZWITCH"
    assert event.mode == "online"


def test_gateway_payment_is_credited_once(db, selection, now):
    first = record_gateway_payment(db, str(selection.id), "pay_dup", 50_000, now=now)
    second = record_gateway_payment(db, str(selection.id), "pay_dup", 50_000, now=now)

    assert first.duplicate is False
    assert second.duplicate is True
    assert second.events == []
    assert second.selection.paid_amount_paise == 50_000
    assert len(second.selection.payment_events) == 1


def test_pause_and_resume_restarts_accrual(db, selection, now):
    selection_id = str(selection.id)
    paused, events = change_status(db, selection_id, SelectionStatus.INACTIVE, now=now + timedelta(days=2))

    assert paused.rent_start_date is None
    assert [e.event_type for e in events] == ["status_changed"]
    assert read_obligations(paused, now + timedelta(days=2)).accrual.days == 0

    resumed, _ = change_status(db, selection_id, SelectionStatus.ACTIVE, now=now + timedelta(days=5))
    assert read_obligations(resumed, now + timedelta(days=6)).accrual.days == 2


def test_same_status_emits_nothing(db, selection, now):
    _, events = change_status(db, str(selection.id), SelectionStatus.ACTIVE, now=now)
    assert events == []


def test_completed_selection_is_terminal(db, selection, now):
    change_status(db, str(selection.id), SelectionStatus.COMPLETED, now=now + timedelta(days=3))
    with pytest.raises(InvalidTransitionError):
        change_status(db, str(selection.id), SelectionStatus.ACTIVE, now=now + timedelta(days=4))


def test_vehicle_assignment_reactivates(db, selection, now):
    change_status(db, str(selection.id), SelectionStatus.INACTIVE, now=now)
    assigned, events = assign_vehicle(db, str(selection.id), "KA01AB1234", now=now + timedelta(days=1))

    assert assigned.vehicle_id == "KA01AB1234"
    assert assigned.status == "active"
    assert assigned.rent_start_date is not None
    assert len(events) == 1


def test_concurrent_writer_is_retried(db, selection):
    """A second session commits between our read and our write"""
    other = sessionmaker(bind=db.get_bind())()
    calls = {"n": 0}

    def operation():
        current = load_selection(db, selection.id)
        calls["n"] += 1
        if calls["n"] == 1:
            rival = other.get(PlanSelection, selection.id)
            rival.extra_reason = "edited elsewhere"
            other.commit()
        current.rent_paid_paise += 1_000
        return current

    try:
        result = run_with_conflict_retry(db, operation)
    finally:
        other.close()

    assert calls["n"] == 2
    assert result.rent_paid_paise == 1_000
    assert result.extra_reason == "edited elsewhere"


def test_conflicts_give_up_after_max_attempts(db, selection, monkeypatch):
    def always_stale():
        raise StaleDataError("version mismatch")

    monkeypatch.setattr(db, "commit", always_stale)

    with pytest.raises(ConcurrencyConflictError):
        run_with_conflict_retry(db, lambda: load_selection(db, selection.id), max_attempts=2)


def _payload(selection_id: str, **overrides) -> dict:
    payload = {
        "payment_id": "pay_wh_1",
        "amount": "1000.00",
        "status": "captured",
        "merchant_order_id": "order_1",
        "udf2": selection_id,
        "deposit_amount": "300",
        "rent_amount": "800",
    }
    payload.update(overrides)
    return payload


def test_captured_webhook_is_processed_once(db, selection):
    first = receive_webhook(db, _payload(str(selection.id)))
    second = receive_webhook(db, _payload(str(selection.id)))

    assert process_webhook_event(db, first.id).outcome == "processed"
    assert process_webhook_event(db, second.id).outcome == "duplicate"

    refreshed = load_selection(db, selection.id)
    assert refreshed.deposit_paid_paise == 27_273
    assert refreshed.rent_paid_paise == 72_727
    assert first.attempts == 1


def test_failed_gateway_status_does_not_touch_ledger(db, selection):
    event = receive_webhook(db, _payload(str(selection.id), status="failed"))

    assert process_webhook_event(db, event.id).outcome == "ignored"
    assert load_selection(db, selection.id).paid_amount_paise == 0


def test_webhook_for_unknown_selection_is_parked(db):
    event = receive_webhook(db, _payload("00000000-0000-0000-0000-000000000000"))
    outcome = process_webhook_event(db, event.id)

    assert outcome.outcome == "failed"
    assert event.processing_status == "failed"
    assert "not found" in event.last_error


def test_obligation_reads_do_not_mutate(db, selection, now):
    as_of = now + timedelta(days=4)
    first = read_obligations(selection, as_of)
    second = read_obligations(selection, as_of)

    assert first.dues == second.dues
    assert first.dues.rent_due_paise == 250_000
    assert selection not in db.dirty


def test_admin_payment_keeps_existing_payment_date_and_mode(db, selection, now):
    driver = confirm_driver_payment(
        db, str(selection.id), PaymentMode.ONLINE, paid_amount_paise=20_000, payment_type=PaymentType.RENT, now=now
    )
    paid_on = driver.selection.payment_date

    result = record_admin_payment(
        db, str(selection.id), admin_paid_amount_paise=10_000, now=now + timedelta(days=1)
    )

    assert result.selection.payment_date == paid_on
    assert result.selection.payment_mode == "online"
    assert result.selection.payment_events[-1].mode == "online"


def test_gateway_insert_race_is_reported_as_duplicate(db, selection, now, monkeypatch):
    """Both deliveries pass the processed-id check; the primary key decides"""
    monkeypatch.setattr(GatewayPaymentRepository, "is_processed", lambda self, gateway_payment_id: False)

    first = record_gateway_payment(db, str(selection.id), "pay_race", 50_000, now=now)
    second = record_gateway_payment(db, str(selection.id), "pay_race", 50_000, now=now)

    assert first.duplicate is False
    assert second.duplicate is True
    assert second.events == []
    assert second.selection.paid_amount_paise == 50_000
    assert len(second.selection.payment_events) == 1


def test_unexpected_processing_error_is_parked_and_replayable(db, selection, monkeypatch):
    def crash(*args, **kwargs):
        raise RuntimeError("connection dropped")

    monkeypatch.setattr(webhooks, "record_gateway_payment", crash)
    event = receive_webhook(db, _payload(str(selection.id)))

    outcome = process_webhook_event(db, event.id)

    assert outcome.outcome == "failed"
    assert event.processing_status == "failed"
    assert event.last_error == "connection dropped"
    assert [e.id for e in WebhookEventRepository(db).list_failed()] == [event.id]

    monkeypatch.undo()
    reset_for_replay(db, event)

    assert process_webhook_event(db, event.id).outcome == "processed"
    assert load_selection(db, selection.id).paid_amount_paise == 100_000


async def test_background_handler_parks_crashed_delivery(db, selection, notifier, monkeypatch):
    def crash(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(webhooks, "record_gateway_payment", crash)
    event = receive_webhook(db, _payload(str(selection.id), payment_id="pay_bg"))

    await handle_gateway_webhook(event.id, sessionmaker(bind=db.get_bind()), notifier)

    db.expire_all()
    assert event.processing_status == "failed"
    assert event.attempts == 1
    assert notifier.events == []
