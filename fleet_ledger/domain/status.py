"""Status state machine governing the rent accrual clock"""

from datetime import datetime

from fleet_ledger.domain.exceptions import InvalidTransitionError
from fleet_ledger.domain.models import ClockState, RentClockPolicy, SelectionStatus


def transition(
    clock: ClockState,
    target: SelectionStatus,
    now: datetime,
    policy: RentClockPolicy = RentClockPolicy.RESET_ON_PAUSE,
) -> ClockState:
    """
    Move a selection to a new status and return the resulting clock.

    Rules:
    - → ACTIVE: stamp rent_start_date only when none exists, clear the pause
    - ACTIVE → INACTIVE: stamp rent_paused_date; RESET_ON_PAUSE also clears
      rent_start_date so the next activation counts from day one again
    - → COMPLETED: freeze the clock at now (keeps the start); terminal
    - Same-state moves are no-ops; payment totals are never touched here
    """
    if clock.status == SelectionStatus.COMPLETED:
        if target == SelectionStatus.COMPLETED:
            return clock
        raise InvalidTransitionError("Completed plan selections cannot change status")

    if target == clock.status:
        return clock

    if target == SelectionStatus.ACTIVE:
        if clock.rent_start_date is None:
            return ClockState(status=target, rent_start_date=now, rent_paused_date=None)
        return ClockState(status=target, rent_start_date=clock.rent_start_date, rent_paused_date=None)

    if target == SelectionStatus.INACTIVE:
        start = None if policy == RentClockPolicy.RESET_ON_PAUSE else clock.rent_start_date
        return ClockState(status=target, rent_start_date=start, rent_paused_date=now)

    # COMPLETED: an inactive selection is already frozen at its pause stamp
    return ClockState(
        status=target,
        rent_start_date=clock.rent_start_date,
        rent_paused_date=clock.rent_paused_date or now,
    )
