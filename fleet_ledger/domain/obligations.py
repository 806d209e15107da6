"""Obligation ledger - outstanding dues per obligation for a plan selection"""

from datetime import datetime, timezone, tzinfo

from fleet_ledger.domain.accrual import rent_due
from fleet_ledger.domain.models import Dues, LedgerSnapshot, PlanType


def accidental_cover_total(snapshot: LedgerSnapshot) -> int:
    """Cover is charged once per weekly slab; daily plans carry none"""
    if snapshot.plan_type != PlanType.WEEKLY:
        return 0
    return snapshot.accidental_cover_paise


def compute_dues(snapshot: LedgerSnapshot, as_of: datetime, tz: tzinfo = timezone.utc) -> Dues:
    """
    Calculate what is still owed on each obligation.

    Requirements:
    - Each due is floored at zero on its own, so over-payment of one
      obligation never offsets another
    - Adjustments are a credit against rent only
    - Rent is recomputed from the accrual clock on every call
    """
    deposit_due = max(0, snapshot.security_deposit_paise - snapshot.deposit_paid_paise)
    rent_outstanding = max(
        0,
        rent_due(snapshot, as_of, tz) - snapshot.rent_paid_paise - snapshot.adjustment_amount_paise,
    )
    cover_due = max(0, accidental_cover_total(snapshot) - snapshot.accidental_cover_paid_paise)
    extra_due = max(0, snapshot.extra_amount_paise - snapshot.extra_amount_paid_paise)

    return Dues(
        deposit_due_paise=deposit_due,
        rent_due_paise=rent_outstanding,
        accidental_cover_due_paise=cover_due,
        extra_amount_due_paise=extra_due,
    )
