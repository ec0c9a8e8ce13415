"""
Geographic hierarchy models: governorate -> city -> district.

Governorates and cities are pre-seeded; admins activate them rather than
creating them. Deleting a parent with children is refused by the
database's foreign keys.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, ForeignKey
from sqlalchemy.sql import func
from backoffice.app.db.session import Base


class Governorate(Base):
    __tablename__ = "governorates"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name_ar = Column(String(150), nullable=False)
    name_en = Column(String(150), nullable=False)
    is_active = Column(Boolean, default=False, nullable=False, index=True)

    # Overrides the provider commission rate for the whole governorate (percent)
    commission_override = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Governorate(id={self.id}, name_en='{self.name_en}', active={self.is_active})>"


class City(Base):
    __tablename__ = "cities"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    governorate_id = Column(Integer, ForeignKey('governorates.id'), nullable=False, index=True)
    name_ar = Column(String(150), nullable=False)
    name_en = Column(String(150), nullable=False)
    is_active = Column(Boolean, default=False, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<City(id={self.id}, name_en='{self.name_en}', governorate_id={self.governorate_id})>"


class District(Base):
    __tablename__ = "districts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    city_id = Column(Integer, ForeignKey('cities.id'), nullable=False, index=True)
    governorate_id = Column(Integer, ForeignKey('governorates.id'), nullable=False, index=True)
    name_ar = Column(String(150), nullable=False)
    name_en = Column(String(150), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<District(id={self.id}, name_en='{self.name_en}', city_id={self.city_id})>"
