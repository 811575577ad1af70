"""
Unit of measure model
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, func
from sqlalchemy.orm import relationship
from alitools.database import Base


class Unit(Base):
    __tablename__ = "units"

    id = Column(Text, primary_key=True)  # GEKO id or unit-<slug>
    name = Column(String(100), nullable=False, index=True)
    moq = Column(Integer, default=1)  # minimum order quantity
    symbol = Column(String(10), nullable=True)
    description = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    products = relationship("Product", back_populates="unit")
