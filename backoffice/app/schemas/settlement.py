"""
Settlement Schemas.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime
from typing import Optional, List
from backoffice.app.models.enums import SettlementStatus, SettlementDirection, SettlementFrequency, OrderStatus


class SettlementResponse(BaseModel):
    """Schema for displaying settlements."""
    id: int
    provider_id: int
    period_start: datetime
    period_end: datetime
    total_orders: int
    gross_revenue: float
    platform_commission: float
    net_payout: float
    delivery_fees_collected: float
    cod_orders_count: int
    cod_gross_revenue: float
    cod_commission_owed: float
    online_orders_count: int
    online_gross_revenue: float
    online_platform_commission: float
    online_payout_owed: float
    net_balance: float
    settlement_direction: Optional[SettlementDirection] = None
    status: SettlementStatus
    orders_included: List[int]
    amount_paid: Optional[float] = None
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    processed_by: Optional[int] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class GenerateSettlementsRequest(BaseModel):
    period_days: int = Field(7)

    @model_validator(mode="after")
    def check_period(self):
        if self.period_days not in (1, 3, 7):
            raise ValueError("period_days must be one of 1, 3, 7")
        return self


class ProviderSettlementRequest(BaseModel):
    """Custom-range settlement for a single provider (end date inclusive)."""
    provider_id: int
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def check_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class SkippedProvider(BaseModel):
    provider_id: int
    reason: str


class GenerationError(BaseModel):
    provider_id: int
    error: str


class GenerationResult(BaseModel):
    settlements_created: int
    providers_processed: int
    skipped: List[SkippedProvider]
    errors: List[GenerationError]
    settlements: List[SettlementResponse]


class RecordPaymentRequest(BaseModel):
    amount: float = Field(..., gt=0)
    payment_method: str = Field(..., min_length=1, max_length=30)
    payment_reference: Optional[str] = Field(None, max_length=120)
    notes: Optional[str] = None


class UpdateSettlementStatusRequest(BaseModel):
    status: SettlementStatus
    notes: Optional[str] = None


class SettlementStats(BaseModel):
    total_settlements: int
    pending_count: int
    pending_amount: float
    overdue_count: int
    overdue_amount: float
    paid_count: int
    paid_amount: float


class OverdueRunResult(BaseModel):
    checked: int
    marked_overdue: int
    settlement_ids: List[int]


class DisputeSettlementRequest(BaseModel):
    reason: str = Field(..., max_length=1000)


class SettlementProviderSummary(BaseModel):
    id: int
    name_ar: str
    name_en: str
    phone: Optional[str] = None
    email: Optional[str] = None
    governorate_id: Optional[int] = None
    city_id: Optional[int] = None
    settlement_group_id: Optional[int] = None

    class Config:
        from_attributes = True


class SettlementOrderLine(BaseModel):
    """One order covered by a settlement."""
    id: int
    order_number: str
    status: OrderStatus
    total: float
    platform_commission: float
    payment_method: str
    customer_name: Optional[str] = None
    created_at: datetime


class SettlementDetailResponse(SettlementResponse):
    provider: Optional[SettlementProviderSummary] = None
    orders: List[SettlementOrderLine] = []


class SettlementDeleteResult(BaseModel):
    success: bool = True
    settlement_id: int
    released_orders: int


# Groups

class SettlementGroupCreate(BaseModel):
    name_ar: str = Field(..., max_length=120)
    name_en: str = Field(..., max_length=120)
    description_ar: Optional[str] = None
    description_en: Optional[str] = None
    frequency: SettlementFrequency = SettlementFrequency.WEEKLY
    is_default: bool = False


class SettlementGroupUpdate(BaseModel):
    name_ar: Optional[str] = Field(None, max_length=120)
    name_en: Optional[str] = Field(None, max_length=120)
    description_ar: Optional[str] = None
    description_en: Optional[str] = None
    frequency: Optional[SettlementFrequency] = None
    is_default: Optional[bool] = None


class SettlementGroupResponse(BaseModel):
    id: int
    name_ar: str
    name_en: str
    description_ar: Optional[str] = None
    description_en: Optional[str] = None
    frequency: SettlementFrequency
    period_days: int
    is_default: bool
    is_active: bool
    provider_count: int = 0
    created_at: datetime


class AssignProviderGroupRequest(BaseModel):
    """`group_id` null moves the provider back to the default group."""
    group_id: Optional[int] = None
