"""
Order, order item and refund models.

`platform_commission` is stamped on each order by a database trigger in
production; settlement code trusts it and never recomputes it.
"""

from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backoffice.app.db.session import Base
from backoffice.app.models.enums import OrderStatus, OrderSettlementStatus, db_enum


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_number = Column(String(40), unique=True, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey('profiles.id'), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=False, index=True)
    governorate_id = Column(Integer, ForeignKey('governorates.id'), nullable=True, index=True)

    status = Column(db_enum(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    order_flow = Column(String(20), default="standard", nullable=False)

    # Money
    subtotal = Column(Float, default=0.0, nullable=False)
    discount = Column(Float, default=0.0, nullable=False)
    delivery_fee = Column(Float, default=0.0, nullable=False)
    total = Column(Float, default=0.0, nullable=False)
    platform_commission = Column(Float, default=0.0, nullable=False)

    payment_method = Column(String(30), default="cash", nullable=False)
    payment_status = Column(String(30), default="pending", nullable=False)

    settlement_status = Column(db_enum(OrderSettlementStatus), nullable=True, index=True)

    delivery_address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    cancelled_reason = Column(Text, nullable=True)
    cancelled_by = Column(String(20), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True, index=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship("OrderItem", back_populates="order", lazy="selectin")

    def __repr__(self):
        return f"<Order(id={self.id}, number='{self.order_number}', status='{self.status.value}')>"


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey('orders.id'), nullable=False, index=True)
    item_source = Column(String(20), default="menu", nullable=False)
    custom_item_id = Column(Integer, ForeignKey('custom_order_items.id'), nullable=True)

    item_name_ar = Column(String(200), nullable=False)
    item_name_en = Column(String(200), nullable=True)
    quantity = Column(Float, default=1, nullable=False)
    unit_price = Column(Float, default=0.0, nullable=False)
    total_price = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="items")


class Refund(Base):
    __tablename__ = "refunds"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey('orders.id'), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(20), default="pending", nullable=False)
    initiated_by = Column(Integer, ForeignKey('profiles.id'), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
