"""Domain models - pure Python dataclasses representing ledger entities"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional


class PlanType(str, Enum):
    WEEKLY = "weekly"
    DAILY = "daily"


class SelectionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMode(str, Enum):
    CASH = "cash"
    ONLINE = "online"


class PaymentType(str, Enum):
    """Obligation a payer declares; TOTAL (or no declaration) means waterfall"""

    SECURITY = "security"
    RENT = "rent"
    TOTAL = "total"


class PaymentSource(str, Enum):
    DRIVER = "driver"
    ADMIN = "admin"
    GATEWAY = "gateway"


class Obligation(str, Enum):
    DEPOSIT = "deposit"
    RENT = "rent"
    ACCIDENTAL_COVER = "accidental_cover"
    EXTRA = "extra"


# Priority used when a payment does not name its obligation
WATERFALL_ORDER = (
    Obligation.DEPOSIT,
    Obligation.RENT,
    Obligation.ACCIDENTAL_COVER,
    Obligation.EXTRA,
)


class RentClockPolicy(str, Enum):
    """What deactivation does to the accrual start stamp"""

    RESET_ON_PAUSE = "reset_on_pause"  # each activation is a fresh rental period
    RETAIN_ON_PAUSE = "retain_on_pause"  # keep the original start across pauses


@dataclass(frozen=True)
class Breakdown:
    """Per-obligation split of a single payment"""

    deposit_paise: int = 0
    rent_paise: int = 0
    accidental_cover_paise: int = 0
    extra_paise: int = 0

    @property
    def total_paise(self) -> int:
        return self.deposit_paise + self.rent_paise + self.accidental_cover_paise + self.extra_paise


@dataclass
class LedgerSnapshot:
    """Ledger-relevant state of one plan selection, detached from storage"""

    plan_type: PlanType
    status: SelectionStatus
    security_deposit_paise: int
    rent_per_day_paise: int
    accidental_cover_paise: int
    vehicle_id: Optional[str] = None
    selected_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    rent_start_date: Optional[datetime] = None
    rent_paused_date: Optional[datetime] = None
    deposit_paid_paise: int = 0
    rent_paid_paise: int = 0
    accidental_cover_paid_paise: int = 0
    extra_amount_paid_paise: int = 0
    extra_amount_paise: int = 0
    adjustment_amount_paise: int = 0


@dataclass
class AccrualSummary:
    """Elapsed billable days and rent accrued as of a point in time"""

    has_started: bool
    days: int
    rent_per_day_paise: int
    total_rent_paise: int
    start_date: Optional[date]
    as_of_date: date


@dataclass
class DailyRentEntry:
    date: date
    amount_paise: int


@dataclass
class Dues:
    """Outstanding amount per obligation, each floored at zero"""

    deposit_due_paise: int
    rent_due_paise: int
    accidental_cover_due_paise: int
    extra_amount_due_paise: int

    @property
    def total_payable_paise(self) -> int:
        return (
            self.deposit_due_paise
            + self.rent_due_paise
            + self.accidental_cover_due_paise
            + self.extra_amount_due_paise
        )

    def due(self, obligation: Obligation) -> int:
        return {
            Obligation.DEPOSIT: self.deposit_due_paise,
            Obligation.RENT: self.rent_due_paise,
            Obligation.ACCIDENTAL_COVER: self.accidental_cover_due_paise,
            Obligation.EXTRA: self.extra_amount_due_paise,
        }[obligation]


@dataclass
class ClockState:
    """Fields the status state machine is allowed to change"""

    status: SelectionStatus
    rent_start_date: Optional[datetime]
    rent_paused_date: Optional[datetime]


@dataclass
class LedgerEvent:
    """Payload handed to the notification dispatcher after a ledger mutation"""

    event_type: str
    selection_id: str
    driver_id: Optional[str]
    amount_paise: int
    obligation_type: Optional[str]

    def to_payload(self) -> dict:
        return {
            "event_type": self.event_type,
            "selection_id": self.selection_id,
            "driver_id": self.driver_id,
            "amount_paise": self.amount_paise,
            "obligation_type": self.obligation_type,
        }
