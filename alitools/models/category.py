"""
Category model - GEKO category tree (hierarchy via parent_id and path)
"""
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, func
from sqlalchemy.orm import relationship
from alitools.database import Base


class Category(Base):
    __tablename__ = "categories"

    id = Column(Text, primary_key=True)  # GEKO id or synthetic path-<slug>
    name = Column(String(255), nullable=False)
    path = Column(Text, nullable=True, index=True)  # e.g. "Tools/Power Tools/Drills"
    idosell_path = Column(Text, nullable=True)
    parent_id = Column(
        Text, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    level = Column(Integer, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    parent = relationship("Category", remote_side=[id], back_populates="children")
    children = relationship("Category", back_populates="parent")
    products = relationship("Product", back_populates="category")
