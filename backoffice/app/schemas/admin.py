"""
Admin Schemas.

Request and response schemas for the provider, user, order and audit
admin endpoints.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict, Any
from backoffice.app.models.enums import (
    ProviderStatus, UserRole, OrderStatus, DeliveryResponsibility
)


# Providers

class ProviderResponse(BaseModel):
    id: int
    owner_id: Optional[int] = None
    name_ar: str
    name_en: str
    category: str
    email: Optional[str] = None
    phone: Optional[str] = None
    status: ProviderStatus
    rejection_reason: Optional[str] = None
    commission_rate: float
    is_featured: bool
    is_verified: bool
    governorate_id: Optional[int] = None
    city_id: Optional[int] = None
    delivery_fee: float
    delivery_responsibility: DeliveryResponsibility
    created_at: datetime

    class Config:
        from_attributes = True


class ApproveProviderRequest(BaseModel):
    commission_rate: Optional[float] = Field(None, ge=0, le=100)


class ReasonRequest(BaseModel):
    """Body for actions that must carry a reason (reject, suspend, ban, cancel)."""
    reason: str = ""


class CommissionUpdateRequest(BaseModel):
    commission_rate: float


class ProviderStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    featured: int


# Users

class UserResponse(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: UserRole
    is_active: bool
    governorate_id: Optional[int] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RoleChangeRequest(BaseModel):
    role: UserRole


class UserStats(BaseModel):
    total: int
    active: int
    banned: int
    by_role: Dict[str, int]


# Orders

class OrderItemResponse(BaseModel):
    id: int
    item_name_ar: str
    item_name_en: Optional[str] = None
    quantity: float
    unit_price: float
    total_price: float

    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    id: int
    order_number: str
    customer_id: int
    provider_id: int
    status: OrderStatus
    subtotal: float
    discount: float
    delivery_fee: float
    total: float
    platform_commission: float
    payment_method: str
    payment_status: str
    cancelled_reason: Optional[str] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[OrderItemResponse] = []

    class Config:
        from_attributes = True


class RefundRequest(BaseModel):
    amount: float
    reason: str = Field(..., min_length=1)


class RefundResponse(BaseModel):
    id: int
    order_id: int
    amount: float
    reason: str
    status: str
    created_at: datetime

    class Config:
        from_attributes = True


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatus


class OrderStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    revenue: float
    today: int


# Audit

class AuditLogResponse(BaseModel):
    id: int
    admin_id: Optional[int] = None
    action_code: str
    entity_type: str
    entity_id: str
    entity_name: Optional[str] = None
    old_data: Optional[Dict[str, Any]] = None
    new_data: Optional[Dict[str, Any]] = None
    changes: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    status: str
    denial_reason: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
