"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from fleet_ledger.domain.models import (
    PaymentMode,
    PaymentStatus,
    PaymentType,
    PlanType,
    SelectionStatus,
)


class CreateSelectionRequest(BaseModel):
    """Request body for POST /v1/plan-selections"""

    driver_mobile: str = Field(..., min_length=1, description="Driver mobile number")
    driver_id: Optional[str] = None
    driver_username: Optional[str] = None
    plan_name: str = Field(..., min_length=1)
    plan_type: PlanType
    security_deposit_paise: int = Field(0, ge=0)
    rent_per_day_paise: int = Field(..., ge=0, description="Locked daily rent from the chosen slab")
    accidental_cover_paise: Optional[int] = Field(None, ge=0, description="Weekly slab cover; defaults per settings")
    selected_rent_slab: Optional[dict] = None


class StatusRequest(BaseModel):
    """Request body for PUT /v1/plan-selections/{id}/status"""

    status: SelectionStatus


class VehicleAssignmentRequest(BaseModel):
    """Request body for PUT /v1/plan-selections/{id}/vehicle"""

    vehicle_id: str = Field(..., min_length=1)


class DriverPaymentRequest(BaseModel):
    """Request body for POST /v1/plan-selections/{id}/confirm-payment"""

    payment_mode: PaymentMode
    paid_amount_paise: Optional[int] = Field(None, gt=0)
    payment_type: Optional[PaymentType] = Field(None, description="rent or security")


class AdminPaymentRequest(BaseModel):
    """Request body for PATCH /v1/plan-selections/{id}"""

    admin_paid_amount_paise: Optional[int] = Field(None, gt=0)
    admin_payment_type: Optional[PaymentType] = None
    extra_amount_paise: Optional[int] = Field(None, gt=0)
    extra_reason: Optional[str] = None
    adjustment_amount_paise: Optional[int] = Field(None, gt=0)
    adjustment_reason: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None


class GatewayWebhookPayload(BaseModel):
    """Gateway callback; amounts are rupees, udf2 carries the plan selection id"""

    payment_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    status: Literal["captured", "failed", "cancelled"]
    merchant_order_id: Optional[str] = None
    payment_token: Optional[str] = None
    gateway: Optional[str] = None
    udf1: Optional[str] = Field(None, description="Driver id")
    udf2: Optional[str] = Field(None, description="Plan selection id")
    udf3: Optional[PaymentType] = Field(None, description="Declared payment type")
    deposit_amount: Optional[Decimal] = Field(None, ge=0)
    rent_amount: Optional[Decimal] = Field(None, ge=0)
    failure_reason: Optional[str] = None


class BreakdownSchema(BaseModel):
    deposit_paise: int
    rent_paise: int
    accidental_cover_paise: int
    extra_paise: int


class DuesSchema(BaseModel):
    deposit_due_paise: int
    rent_due_paise: int
    accidental_cover_due_paise: int
    extra_amount_due_paise: int
    total_payable_paise: int


class AccrualSchema(BaseModel):
    has_started: bool
    days: int
    rent_per_day_paise: int
    total_rent_paise: int
    start_date: Optional[date] = None
    as_of_date: date


class ObligationsResponse(BaseModel):
    """Response for GET /v1/plan-selections/{id}/obligations"""

    selection_id: str
    dues: DuesSchema
    accrual: AccrualSchema


class DailyRentEntrySchema(BaseModel):
    date: date
    amount_paise: int


class RentSummaryResponse(BaseModel):
    """Response for GET /v1/plan-selections/{id}/rent-summary"""

    selection_id: str
    status: str
    accrual: AccrualSchema
    entries: List[DailyRentEntrySchema]


class PaymentEventSchema(BaseModel):
    """Single entry of driver_payments / admin_payments"""

    date: datetime
    amount_paise: int
    source: str
    mode: str
    type: Optional[str] = None
    breakdown: BreakdownSchema
    transaction_id: Optional[str] = None
    merchant_order_id: Optional[str] = None
    gateway: Optional[str] = None
    status: Optional[str] = None


class ChargeEntrySchema(BaseModel):
    amount_paise: int
    reason: str
    date: datetime


class SelectionResponse(BaseModel):
    """Plan selection with its ledger state and computed dues"""

    id: str
    driver_id: Optional[str] = None
    driver_username: Optional[str] = None
    driver_mobile: str
    plan_name: str
    plan_type: str
    vehicle_id: Optional[str] = None
    status: str
    security_deposit_paise: int
    rent_per_day_paise: int
    accidental_cover_paise: int
    selected_date: datetime
    rent_start_date: Optional[datetime] = None
    rent_paused_date: Optional[datetime] = None
    deposit_paid_paise: int
    rent_paid_paise: int
    accidental_cover_paid_paise: int
    extra_amount_paid_paise: int
    paid_amount_paise: int
    admin_paid_amount_paise: int
    extra_amount_paise: int
    adjustment_amount_paise: int
    extra_amounts: List[ChargeEntrySchema]
    adjustments: List[ChargeEntrySchema]
    payment_status: str
    payment_mode: Optional[str] = None
    payment_date: Optional[datetime] = None
    driver_payments: List[PaymentEventSchema]
    admin_payments: List[PaymentEventSchema]
    dues: DuesSchema
    accrual: AccrualSchema


class PaymentResponse(BaseModel):
    """Response for the payment recorders"""

    message: str
    breakdown: Optional[BreakdownSchema] = None
    selection: SelectionResponse


class WebhookAck(BaseModel):
    success: bool = True
    event_id: str


class WebhookEventSchema(BaseModel):
    event_id: str
    gateway_payment_id: str
    selection_ref: Optional[str] = None
    gateway_status: str
    processing_status: str
    attempts: int
    last_error: Optional[str] = None
    created_at: datetime


class WebhookReplayResponse(BaseModel):
    event_id: str
    outcome: str
    error: Optional[str] = None


class OnlinePaymentRequest(BaseModel):
    """Client callback after checkout; amounts are rupees"""

    payment_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    status: Literal["captured", "failed", "cancelled"] = "captured"
    payment_type: Optional[PaymentType] = None
    merchant_order_id: Optional[str] = None
    payment_token: Optional[str] = None
    gateway: Optional[str] = None
    deposit_amount: Optional[Decimal] = Field(None, ge=0)
    rent_amount: Optional[Decimal] = Field(None, ge=0)
