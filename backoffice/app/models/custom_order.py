"""
Custom order models.

A customer's free-form request (text, voice note or photos) is transcribed
by the merchant into priced line items.
Lifecycle: pending -> priced -> customer_approved / customer_rejected,
with expired / cancelled as side exits.
"""

from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backoffice.app.db.session import Base
from backoffice.app.models.enums import (
    CustomOrderInputType, CustomRequestStatus, ItemAvailabilityStatus, db_enum
)


class CustomOrderRequest(Base):
    __tablename__ = "custom_order_requests"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey('profiles.id'), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey('orders.id'), nullable=True)

    input_type = Column(db_enum(CustomOrderInputType), default=CustomOrderInputType.TEXT, nullable=False)
    original_text = Column(Text, nullable=True)
    voice_url = Column(String(500), nullable=True)
    image_urls = Column(JSON, nullable=True)
    transcribed_text = Column(Text, nullable=True)
    customer_notes = Column(Text, nullable=True)
    delivery_address = Column(Text, nullable=True)

    status = Column(db_enum(CustomRequestStatus), default=CustomRequestStatus.PENDING, nullable=False, index=True)

    items_count = Column(Integer, default=0, nullable=False)
    subtotal = Column(Float, default=0.0, nullable=False)
    delivery_fee = Column(Float, default=0.0, nullable=False)
    total = Column(Float, default=0.0, nullable=False)

    pricing_expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    approval_expires_at = Column(DateTime(timezone=True), nullable=True)
    priced_at = Column(DateTime(timezone=True), nullable=True)
    responded_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    items = relationship(
        "CustomOrderItem",
        back_populates="request",
        order_by="CustomOrderItem.display_order",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<CustomOrderRequest(id={self.id}, provider_id={self.provider_id}, status='{self.status.value}')>"


class CustomOrderItem(Base):
    __tablename__ = "custom_order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey('custom_order_requests.id'), nullable=False, index=True)

    original_customer_text = Column(Text, nullable=True)
    item_name_ar = Column(String(200), nullable=False)
    item_name_en = Column(String(200), nullable=True)
    description_ar = Column(Text, nullable=True)
    unit_type = Column(String(30), nullable=True)
    quantity = Column(Float, default=1, nullable=False)
    unit_price = Column(Float, default=0.0, nullable=False)
    total_price = Column(Float, default=0.0, nullable=False)

    availability_status = Column(
        db_enum(ItemAvailabilityStatus), default=ItemAvailabilityStatus.AVAILABLE, nullable=False
    )
    substitute_name_ar = Column(String(200), nullable=True)
    substitute_name_en = Column(String(200), nullable=True)
    substitute_quantity = Column(Float, nullable=True)
    substitute_unit_type = Column(String(30), nullable=True)
    substitute_unit_price = Column(Float, nullable=True)
    substitute_total_price = Column(Float, nullable=True)

    merchant_notes = Column(Text, nullable=True)
    display_order = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    request = relationship("CustomOrderRequest", back_populates="items")


class CustomOrderPriceHistory(Base):
    """Last quoted price per provider and normalized item name."""
    __tablename__ = "custom_order_price_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey('profiles.id'), nullable=True)
    request_id = Column(Integer, ForeignKey('custom_order_requests.id'), nullable=True)

    item_name_normalized = Column(String(200), nullable=False, index=True)
    item_name_ar = Column(String(200), nullable=False)
    item_name_en = Column(String(200), nullable=True)
    unit_type = Column(String(30), nullable=True)
    unit_price = Column(Float, nullable=False)
    quantity = Column(Float, nullable=False)
    total_price = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
