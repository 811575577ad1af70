"""
Product models - the catalog core imported from the GEKO feed
"""
from sqlalchemy import (
    Column, Integer, String, Text, Float, Boolean, DateTime, Date, ForeignKey,
    UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from alitools.database import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(100), unique=True, nullable=False, index=True)  # natural key
    code_on_card = Column(String(50), nullable=True)
    ean = Column(String(13), unique=True, nullable=True, index=True)
    producer_code = Column(String(50), nullable=True, index=True)

    name = Column(String(255), nullable=False)
    description_short = Column(Text, nullable=True)
    description_long = Column(Text, nullable=True)
    description_html = Column(Text, nullable=True)
    url = Column(String(512), nullable=True)

    vat = Column(Float, default=23.0)  # percent
    status = Column(String(20), default="active")  # active, inactive, discontinued
    discontinued = Column(Boolean, nullable=False, default=False)
    delivery_date = Column(Date, nullable=True)

    category_id = Column(Text, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    producer_id = Column(Integer, ForeignKey("producers.id", ondelete="SET NULL"), nullable=True)
    unit_id = Column(Text, ForeignKey("units.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    category = relationship("Category", back_populates="products")
    producer = relationship("Producer", back_populates="products")
    unit = relationship("Unit", back_populates="products")
    variants = relationship("Variant", back_populates="product", cascade="all, delete-orphan", passive_deletes=True)
    images = relationship("Image", back_populates="product", cascade="all, delete-orphan", passive_deletes=True)
    documents = relationship("Document", back_populates="product", cascade="all, delete-orphan", passive_deletes=True)
    properties = relationship(
        "ProductProperty", back_populates="product", cascade="all, delete-orphan", passive_deletes=True
    )
    category_links = relationship(
        "ProductCategory", back_populates="product", cascade="all, delete-orphan", passive_deletes=True
    )


class ProductCategory(Base):
    """Additional category assignments (many-to-many)."""
    __tablename__ = "product_categories"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    category_id = Column(Text, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    product = relationship("Product", back_populates="category_links")
    category = relationship("Category")

    __table_args__ = (
        UniqueConstraint("product_id", "category_id", name="uq_product_categories_product_category"),
    )
