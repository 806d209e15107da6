"""Rupee/paise conversion for amounts arriving from the payment gateway"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

PAISE_PER_RUPEE = 100


def rupees_to_paise(amount: Union[Decimal, str, int, float]) -> int:
    """Round a rupee amount to the nearest paisa (half up) and return integer paise"""
    rupees = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return int(rupees * PAISE_PER_RUPEE)


def paise_to_rupees(amount_paise: int) -> Decimal:
    return (Decimal(amount_paise) / PAISE_PER_RUPEE).quantize(Decimal("0.01"))


def optional_rupees_to_paise(amount) -> Optional[int]:
    return None if amount is None else rupees_to_paise(amount)
