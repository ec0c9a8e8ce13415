"""
Profile database model.

One row per account (customer, provider owner or admin).
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from backoffice.app.db.session import Base
from backoffice.app.models.enums import UserRole, db_enum


class Profile(Base):
    """
    Account profile.

    `is_active=False` is how a ban is represented; the auth dependency
    rejects tokens of inactive profiles.
    """
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(200), nullable=True)
    phone = Column(String(30), nullable=True)
    role = Column(db_enum(UserRole), default=UserRole.CUSTOMER, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    governorate_id = Column(Integer, ForeignKey('governorates.id'), nullable=True, index=True)
    city_id = Column(Integer, ForeignKey('cities.id'), nullable=True)

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Profile(id={self.id}, email='{self.email}', role='{self.role.value}')>"
