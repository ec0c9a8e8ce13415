"""
Settlement database models.

Snapshot aggregate of one provider's delivered orders over a period, with
the cash-on-delivery and online breakdowns netted into a single balance.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, String, JSON, Text, Boolean
from sqlalchemy.sql import func
from backoffice.app.db.session import Base
from backoffice.app.models.enums import SettlementStatus, SettlementDirection, SettlementFrequency, db_enum


class Settlement(Base):
    """
    Settlement model.

    `orders_included` lists the order ids this settlement covers; an order id
    appears in at most one settlement.
    """
    __tablename__ = "settlements"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=False, index=True)

    period_start = Column(DateTime(timezone=True), nullable=False)
    period_end = Column(DateTime(timezone=True), nullable=False, index=True)

    # Totals
    total_orders = Column(Integer, default=0, nullable=False)
    gross_revenue = Column(Float, default=0.0, nullable=False)
    platform_commission = Column(Float, default=0.0, nullable=False)
    net_payout = Column(Float, default=0.0, nullable=False)
    delivery_fees_collected = Column(Float, default=0.0, nullable=False)

    # Cash on delivery: provider collected the cash, owes commission
    cod_orders_count = Column(Integer, default=0, nullable=False)
    cod_gross_revenue = Column(Float, default=0.0, nullable=False)
    cod_commission_owed = Column(Float, default=0.0, nullable=False)

    # Online: platform collected the money, owes the payout
    online_orders_count = Column(Integer, default=0, nullable=False)
    online_gross_revenue = Column(Float, default=0.0, nullable=False)
    online_platform_commission = Column(Float, default=0.0, nullable=False)
    online_payout_owed = Column(Float, default=0.0, nullable=False)

    net_balance = Column(Float, default=0.0, nullable=False)
    settlement_direction = Column(db_enum(SettlementDirection), nullable=True)

    status = Column(db_enum(SettlementStatus), default=SettlementStatus.PENDING, nullable=False, index=True)
    orders_included = Column(JSON, nullable=False, default=list)

    # Payment
    amount_paid = Column(Float, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(String(30), nullable=True)
    payment_reference = Column(String(120), nullable=True)
    processed_by = Column(Integer, ForeignKey('profiles.id'), nullable=True)
    notes = Column(Text, nullable=True)

    created_by = Column(String(60), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Settlement(id={self.id}, status='{self.status.value}', net_balance={self.net_balance})>"


class SettlementGroup(Base):
    """
    Providers settled on the same schedule.

    At most one group is the default; providers without a group follow it.
    """
    __tablename__ = "settlement_groups"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name_ar = Column(String(120), nullable=False)
    name_en = Column(String(120), nullable=False)
    description_ar = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)

    frequency = Column(db_enum(SettlementFrequency), default=SettlementFrequency.WEEKLY, nullable=False)
    is_default = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<SettlementGroup(id={self.id}, name_en='{self.name_en}', frequency='{self.frequency.value}')>"
