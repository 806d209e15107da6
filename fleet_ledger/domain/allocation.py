"""Payment allocation across deposit, rent, accidental cover and extra"""

from typing import Dict, Optional

from fleet_ledger.domain.exceptions import ValidationError
from fleet_ledger.domain.models import (
    WATERFALL_ORDER,
    Breakdown,
    Dues,
    Obligation,
    PaymentType,
)


def _breakdown_from(portions: Dict[Obligation, int]) -> Breakdown:
    return Breakdown(
        deposit_paise=portions.get(Obligation.DEPOSIT, 0),
        rent_paise=portions.get(Obligation.RENT, 0),
        accidental_cover_paise=portions.get(Obligation.ACCIDENTAL_COVER, 0),
        extra_paise=portions.get(Obligation.EXTRA, 0),
    )


def allocate(amount_paise: int, declared_type: Optional[PaymentType], dues: Dues) -> Breakdown:
    """
    Split a payment across the four obligations.

    Requirements:
    - SECURITY / RENT: whole amount to that obligation, even past its due
    - TOTAL or undeclared: waterfall deposit → rent → accidental cover → extra,
      each step taking min(remaining, due)
    - Whatever is left after every due is met lands on the last obligation
      in the order (extra), so the portions always sum to the amount

    Example:
        6000 total, deposit due 5000, rent due 1500
        → deposit 5000, rent 1000, cover 0, extra 0
    """
    if amount_paise <= 0:
        raise ValidationError("Payment amount must be a positive number")

    if declared_type == PaymentType.SECURITY:
        return Breakdown(deposit_paise=amount_paise)
    if declared_type == PaymentType.RENT:
        return Breakdown(rent_paise=amount_paise)

    remaining = amount_paise
    portions: Dict[Obligation, int] = {}
    for obligation in WATERFALL_ORDER:
        taken = min(remaining, dues.due(obligation))
        portions[obligation] = taken
        remaining -= taken

    # Over-payment
    portions[WATERFALL_ORDER[-1]] += remaining

    return _breakdown_from(portions)


def rescale_split(amount_paise: int, deposit_paise: int, rent_paise: int) -> Breakdown:
    """
    Reconcile a client-supplied deposit/rent split with the captured amount.

    A split that already sums to the amount is used as is. Otherwise both
    parts are scaled proportionally; deposit is rounded half-up to the paisa
    and rent takes the rest so nothing is lost to rounding.

    Example:
        amount 1000.00, split 300 + 800 = 1100
        → deposit 272.73, rent 727.27
    """
    if amount_paise <= 0:
        raise ValidationError("Payment amount must be a positive number")
    if deposit_paise < 0 or rent_paise < 0:
        raise ValidationError("Deposit and rent split cannot be negative")

    split_total = deposit_paise + rent_paise
    if split_total == 0:
        raise ValidationError("Deposit and rent split cannot both be zero")

    if split_total == amount_paise:
        return Breakdown(deposit_paise=deposit_paise, rent_paise=rent_paise)

    scaled_deposit = (2 * deposit_paise * amount_paise + split_total) // (2 * split_total)
    return Breakdown(deposit_paise=scaled_deposit, rent_paise=amount_paise - scaled_deposit)
