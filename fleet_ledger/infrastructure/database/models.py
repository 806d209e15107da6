"""SQLAlchemy ORM models for plan selections and their payment ledger"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    DateTime,
    Integer,
    ForeignKey,
    Text,
    JSON,
    Uuid,
)
from sqlalchemy.orm import declarative_base, relationship, validates

from fleet_ledger.domain.exceptions import RentRateLockedError
from fleet_ledger.utils.date_utils import utc_now

Base = declarative_base()


class PlanSelection(Base):
    """A driver's chosen rental plan and its running financial state"""

    __tablename__ = "plan_selection"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Identity
    driver_id = Column(Text, nullable=True, index=True)
    driver_username = Column(Text, nullable=True)
    driver_mobile = Column(Text, nullable=False, index=True)

    # Plan terms (fixed at selection time)
    plan_name = Column(Text, nullable=False)
    plan_type = Column(String(16), nullable=False)  # weekly | daily
    security_deposit_paise = Column(BigInteger, nullable=False, default=0)
    rent_per_day_paise = Column(BigInteger, nullable=False)
    accidental_cover_paise = Column(BigInteger, nullable=False, default=0)
    selected_rent_slab = Column(JSON, nullable=True)

    # Vehicle linkage and accrual clock
    vehicle_id = Column(Text, nullable=True)
    selected_date = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    rent_start_date = Column(DateTime(timezone=True), nullable=True)
    rent_paused_date = Column(DateTime(timezone=True), nullable=True)

    status = Column(String(16), nullable=False, default="active")  # active | inactive | completed

    # Cumulative totals
    deposit_paid_paise = Column(BigInteger, nullable=False, default=0)
    rent_paid_paise = Column(BigInteger, nullable=False, default=0)
    extra_amount_paid_paise = Column(BigInteger, nullable=False, default=0)
    accidental_cover_paid_paise = Column(BigInteger, nullable=False, default=0)
    paid_amount_paise = Column(BigInteger, nullable=False, default=0)  # driver + gateway
    admin_paid_amount_paise = Column(BigInteger, nullable=False, default=0)

    # Variable obligations
    extra_amount_paise = Column(BigInteger, nullable=False, default=0)
    extra_reason = Column(Text, nullable=True)
    adjustment_amount_paise = Column(BigInteger, nullable=False, default=0)
    adjustment_reason = Column(Text, nullable=True)

    payment_status = Column(String(16), nullable=False, default="pending")
    payment_date = Column(DateTime(timezone=True), nullable=True)
    payment_mode = Column(String(16), nullable=True)  # cash | online
    payment_type = Column(String(16), nullable=True)  # last declared type

    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    payment_events = relationship(
        "PaymentEvent",
        back_populates="selection",
        cascade="all, delete-orphan",
        order_by="PaymentEvent.created_at",
    )
    charge_entries = relationship(
        "ChargeEntry",
        back_populates="selection",
        cascade="all, delete-orphan",
        order_by="ChargeEntry.created_at",
    )

    # Stale writes raise StaleDataError on flush
    __mapper_args__ = {"version_id_col": version_id}

    @validates("rent_per_day_paise")
    def _lock_rent_rate(self, key, value):
        current = self.rent_per_day_paise
        if current is not None and current != value:
            raise RentRateLockedError("Rent per day is fixed at plan selection")
        return value


class PaymentEvent(Base):
    """Append-only record of one payment and its per-obligation split"""

    __tablename__ = "plan_payment_event"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    selection_id = Column(Uuid(as_uuid=True), ForeignKey("plan_selection.id", ondelete="CASCADE"), nullable=False, index=True)
    source = Column(String(16), nullable=False)  # driver | admin | gateway
    mode = Column(String(16), nullable=False)  # cash | online
    declared_type = Column(String(16), nullable=True)  # security | rent | total
    amount_paise = Column(BigInteger, nullable=False)
    deposit_paise = Column(BigInteger, nullable=False, default=0)
    rent_paise = Column(BigInteger, nullable=False, default=0)
    accidental_cover_paise = Column(BigInteger, nullable=False, default=0)
    extra_paise = Column(BigInteger, nullable=False, default=0)

    # Gateway details
    transaction_id = Column(Text, nullable=True)
    merchant_order_id = Column(Text, nullable=True)
    payment_token = Column(Text, nullable=True)
    gateway = Column(Text, nullable=True)
    gateway_status = Column(String(16), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    selection = relationship("PlanSelection", back_populates="payment_events")


class ChargeEntry(Base):
    """Append-only extra charge or rent adjustment"""

    __tablename__ = "plan_charge_entry"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    selection_id = Column(Uuid(as_uuid=True), ForeignKey("plan_selection.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(String(16), nullable=False)  # extra | adjustment
    amount_paise = Column(BigInteger, nullable=False)
    reason = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    selection = relationship("PlanSelection", back_populates="charge_entries")


class ProcessedGatewayPayment(Base):
    """Gateway transaction ids already credited to the ledger"""

    __tablename__ = "processed_gateway_payment"

    gateway_payment_id = Column(Text, primary_key=True)
    selection_id = Column(Uuid(as_uuid=True), ForeignKey("plan_selection.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class GatewayWebhookEvent(Base):
    """Inbound webhook inbox with processing and retry tracking"""

    __tablename__ = "gateway_webhook_event"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    gateway_payment_id = Column(Text, nullable=False, index=True)
    merchant_order_id = Column(Text, nullable=True)
    selection_ref = Column(Text, nullable=True)
    gateway_status = Column(String(16), nullable=False)  # captured | failed | cancelled
    payload = Column(JSON, nullable=False)
    processing_status = Column(Text, nullable=False, default="received")
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
