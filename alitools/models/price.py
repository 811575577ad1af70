"""
Price model - one row per variant, price type and currency
"""
from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, ForeignKey, UniqueConstraint, Index, func,
)
from sqlalchemy.orm import relationship
from alitools.database import Base


class Price(Base):
    __tablename__ = "prices"

    id = Column(Integer, primary_key=True, index=True)
    variant_id = Column(Integer, ForeignKey("variants.id", ondelete="CASCADE"), nullable=False, index=True)
    price_type = Column(String(20), nullable=False, default="retail")  # retail, wholesale, suggested
    currency = Column(String(3), nullable=False, default="EUR")
    gross_price = Column(Float, nullable=False)
    net_price = Column(Float, nullable=True)
    min_quantity = Column(Integer, default=1)
    valid_from = Column(DateTime, nullable=True)
    valid_to = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    variant = relationship("Variant", back_populates="prices")

    __table_args__ = (
        UniqueConstraint("variant_id", "price_type", "currency", name="uq_prices_variant_type_currency"),
        Index("ix_prices_type_currency", "price_type", "currency"),
    )
