"""
Custom Order Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Literal
from backoffice.app.models.enums import (
    CustomOrderInputType, CustomRequestStatus, ItemAvailabilityStatus
)


class CustomOrderItemInput(BaseModel):
    """One line typed by the merchant in the pricing workbench."""
    original_customer_text: Optional[str] = None
    item_name_ar: str = ""
    item_name_en: Optional[str] = None
    unit_type: Optional[str] = None
    quantity: float = Field(1, ge=0)
    unit_price: float = Field(0, ge=0)
    availability_status: ItemAvailabilityStatus = ItemAvailabilityStatus.AVAILABLE
    substitute_name_ar: Optional[str] = None
    substitute_name_en: Optional[str] = None
    substitute_quantity: Optional[float] = Field(None, ge=0)
    substitute_unit_type: Optional[str] = None
    substitute_unit_price: Optional[float] = Field(None, ge=0)
    merchant_notes: Optional[str] = None


class CustomOrderItemResponse(BaseModel):
    id: int
    original_customer_text: Optional[str] = None
    item_name_ar: str
    item_name_en: Optional[str] = None
    unit_type: Optional[str] = None
    quantity: float
    unit_price: float
    total_price: float
    availability_status: ItemAvailabilityStatus
    substitute_name_ar: Optional[str] = None
    substitute_name_en: Optional[str] = None
    substitute_quantity: Optional[float] = None
    substitute_unit_price: Optional[float] = None
    substitute_total_price: Optional[float] = None
    merchant_notes: Optional[str] = None
    display_order: int

    class Config:
        from_attributes = True


class CustomOrderRequestCreate(BaseModel):
    provider_id: int
    input_type: CustomOrderInputType = CustomOrderInputType.TEXT
    original_text: Optional[str] = None
    voice_url: Optional[str] = None
    image_urls: Optional[List[str]] = None
    customer_notes: Optional[str] = None
    delivery_address: Optional[str] = None


class CustomOrderRequestResponse(BaseModel):
    id: int
    provider_id: int
    customer_id: int
    order_id: Optional[int] = None
    input_type: CustomOrderInputType
    original_text: Optional[str] = None
    voice_url: Optional[str] = None
    image_urls: Optional[List[str]] = None
    transcribed_text: Optional[str] = None
    customer_notes: Optional[str] = None
    status: CustomRequestStatus
    items_count: int
    subtotal: float
    delivery_fee: float
    total: float
    pricing_expires_at: Optional[datetime] = None
    approval_expires_at: Optional[datetime] = None
    priced_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    created_at: datetime
    items: List[CustomOrderItemResponse] = []

    class Config:
        from_attributes = True


class PricingSummary(BaseModel):
    """Workbench totals shown to the merchant while pricing."""
    items_count: int
    subtotal: float
    delivery_fee: float
    total: float
    commission_rate: float
    commission: float
    net_profit: float


class TimeRemaining(BaseModel):
    seconds: int
    expired: bool
    display: str


class PricingWorkbenchResponse(BaseModel):
    request: CustomOrderRequestResponse
    time_remaining: TimeRemaining


class SubmitPricingRequest(BaseModel):
    items: List[CustomOrderItemInput] = Field(..., min_length=1)
    transcribed_text: Optional[str] = None


class SummarizeRequest(BaseModel):
    items: List[CustomOrderItemInput]
    delivery_fee: float = Field(0, ge=0)


class PriceHistoryEntry(BaseModel):
    id: int
    item_name_ar: str
    item_name_en: Optional[str] = None
    unit_type: Optional[str] = None
    unit_price: float
    quantity: float
    customer_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CustomerResponseRequest(BaseModel):
    decision: Literal["approve", "reject"]


class ExpireRunResult(BaseModel):
    pricing_expired: int
    approval_expired: int
