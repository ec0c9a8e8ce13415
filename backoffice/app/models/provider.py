"""
Provider (store) database model.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, ForeignKey, Text
from sqlalchemy.sql import func
from backoffice.app.db.session import Base
from backoffice.app.models.enums import ProviderStatus, DeliveryResponsibility, db_enum


class Provider(Base):
    """
    A merchant store on the marketplace.

    `delivery_responsibility` decides whether online delivery fees are
    paid out to the merchant during settlement.
    """
    __tablename__ = "providers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey('profiles.id'), nullable=True, index=True)

    name_ar = Column(String(200), nullable=False)
    name_en = Column(String(200), nullable=False)
    category = Column(String(50), nullable=False, default="restaurant")
    email = Column(String(255), nullable=True)
    phone = Column(String(30), nullable=True)

    status = Column(db_enum(ProviderStatus), default=ProviderStatus.PENDING_APPROVAL, nullable=False, index=True)
    rejection_reason = Column(Text, nullable=True)
    commission_rate = Column(Float, default=7.0, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)

    governorate_id = Column(Integer, ForeignKey('governorates.id'), nullable=True, index=True)
    city_id = Column(Integer, ForeignKey('cities.id'), nullable=True, index=True)
    district_id = Column(Integer, ForeignKey('districts.id'), nullable=True)

    settlement_group_id = Column(
        Integer, ForeignKey('settlement_groups.id', ondelete='SET NULL'), nullable=True, index=True
    )

    delivery_fee = Column(Float, default=0.0, nullable=False)
    delivery_responsibility = Column(
        db_enum(DeliveryResponsibility), default=DeliveryResponsibility.MERCHANT, nullable=False
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Provider(id={self.id}, name_en='{self.name_en}', status='{self.status.value}')>"
