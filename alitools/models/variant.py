"""
Variant and stock models
"""
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from alitools.database import Base


class Variant(Base):
    __tablename__ = "variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(150), unique=True, nullable=False, index=True)  # natural key
    name = Column(String(255), nullable=True)
    size = Column(String(50), nullable=True)
    color = Column(String(50), nullable=True)
    weight = Column(Float, nullable=True)
    gross_weight = Column(Float, nullable=True)
    ean = Column(String(13), nullable=True)
    status = Column(String(20), default="active")

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    product = relationship("Product", back_populates="variants")
    stock = relationship("Stock", back_populates="variant", uselist=False, passive_deletes=True)
    prices = relationship("Price", back_populates="variant", cascade="all, delete-orphan", passive_deletes=True)


class Stock(Base):
    __tablename__ = "stocks"

    id = Column(Integer, primary_key=True, index=True)
    variant_id = Column(Integer, ForeignKey("variants.id", ondelete="CASCADE"), unique=True, nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    available = Column(Boolean, nullable=False, default=True)
    min_order_quantity = Column(Integer, default=1)
    max_order_quantity = Column(Integer, nullable=True)
    warehouse = Column(String(100), nullable=True)
    availability_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    variant = relationship("Variant", back_populates="stock")
