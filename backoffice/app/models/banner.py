"""
Homepage banner database model.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.sql import func
from backoffice.app.db.session import Base
from backoffice.app.models.enums import BannerType, BannerApprovalStatus, db_enum


class HomepageBanner(Base):
    """
    Promotional banner shown on the customer or partner homepage.

    Display status (active/scheduled/expired) is derived from the
    scheduling window and `is_active`; it is never stored.
    """
    __tablename__ = "homepage_banners"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    title_ar = Column(String(200), nullable=False)
    title_en = Column(String(200), nullable=False)
    description_ar = Column(Text, nullable=True)
    description_en = Column(Text, nullable=True)
    badge_text_ar = Column(String(100), nullable=True)
    badge_text_en = Column(String(100), nullable=True)
    cta_text_ar = Column(String(100), nullable=True)
    cta_text_en = Column(String(100), nullable=True)

    image_url = Column(String(500), nullable=True)
    image_position = Column(String(20), default="end", nullable=False)
    gradient_start = Column(String(9), default="#009DE0", nullable=False)
    gradient_end = Column(String(9), default="#0088CC", nullable=False)
    has_glassmorphism = Column(Boolean, default=False, nullable=False)

    link_url = Column(String(500), nullable=True)
    link_type = Column(String(30), nullable=True)

    banner_type = Column(db_enum(BannerType), default=BannerType.CUSTOMER, nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey('providers.id'), nullable=True, index=True)
    governorate_id = Column(Integer, ForeignKey('governorates.id'), nullable=True)
    city_id = Column(Integer, ForeignKey('cities.id'), nullable=True)

    display_order = Column(Integer, default=0, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    approval_status = Column(db_enum(BannerApprovalStatus), nullable=True, index=True)
    rejection_reason = Column(Text, nullable=True)
    duration_type = Column(String(20), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(Integer, ForeignKey('profiles.id'), nullable=True)

    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(Integer, ForeignKey('profiles.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<HomepageBanner(id={self.id}, title_en='{self.title_en}', order={self.display_order})>"
