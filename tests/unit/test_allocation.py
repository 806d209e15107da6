"""Unit tests for payment allocation"""

import pytest

from fleet_ledger.domain.allocation import allocate, rescale_split
from fleet_ledger.domain.exceptions import ValidationError
from fleet_ledger.domain.models import Breakdown, Dues, PaymentType


@pytest.fixture
def dues() -> Dues:
    return Dues(
        deposit_due_paise=500_000,
        rent_due_paise=150_000,
        accidental_cover_due_paise=10_500,
        extra_amount_due_paise=20_000,
    )


def test_waterfall_fills_deposit_before_rent(dues):
    breakdown = allocate(600_000, PaymentType.TOTAL, dues)
    assert breakdown == Breakdown(deposit_paise=500_000, rent_paise=100_000)


def test_undeclared_type_uses_waterfall(dues):
    assert allocate(600_000, None, dues) == allocate(600_000, PaymentType.TOTAL, dues)


def test_waterfall_reaches_cover_and_extra(dues):
    breakdown = allocate(670_500, None, dues)

    assert breakdown.deposit_paise == 500_000
    assert breakdown.rent_paise == 150_000
    assert breakdown.accidental_cover_paise == 10_500
    assert breakdown.extra_paise == 10_000


def test_overpayment_lands_on_extra(dues):
    breakdown = allocate(700_000, None, dues)

    assert breakdown.extra_paise == 20_000 + 19_500
    assert breakdown.total_paise == 700_000


def test_waterfall_with_nothing_due_goes_to_extra():
    breakdown = allocate(10_000, None, Dues(0, 0, 0, 0))
    assert breakdown == Breakdown(extra_paise=10_000)


def test_declared_rent_takes_whole_amount(dues):
    breakdown = allocate(20_000, PaymentType.RENT, dues)
    assert breakdown == Breakdown(rent_paise=20_000)


def test_declared_security_may_exceed_its_due():
    breakdown = allocate(50_000, PaymentType.SECURITY, Dues(0, 10_000, 0, 0))
    assert breakdown == Breakdown(deposit_paise=50_000)


@pytest.mark.parametrize("amount", [0, -100])
def test_non_positive_amount_is_rejected(dues, amount):
    with pytest.raises(ValidationError):
        allocate(amount, None, dues)


def test_matching_split_is_used_as_is():
    assert rescale_split(110_000, 30_000, 80_000) == Breakdown(deposit_paise=30_000, rent_paise=80_000)


def test_split_is_rescaled_to_captured_amount():
    """300 + 800 against a 1000 capture"""
    breakdown = rescale_split(100_000, 30_000, 80_000)

    assert breakdown.deposit_paise == 27_273
    assert breakdown.rent_paise == 72_727
    assert breakdown.total_paise == 100_000


def test_rescale_rounds_deposit_half_up():
    # 1 * 3 / 2 = 1.5 -> 2
    assert rescale_split(3, 1, 1).deposit_paise == 2


def test_rescale_with_only_rent():
    assert rescale_split(5_000, 0, 7_000) == Breakdown(rent_paise=5_000)


def test_rescale_rejects_empty_or_negative_split():
    with pytest.raises(ValidationError):
        rescale_split(1_000, 0, 0)
    with pytest.raises(ValidationError):
        rescale_split(1_000, -1, 2_000)
