"""
Product media models: images, documents and free-form properties
"""
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, UniqueConstraint, func,
)
from sqlalchemy.orm import relationship
from alitools.database import Base


class Image(Base):
    __tablename__ = "images"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(String(512), nullable=False)
    is_main = Column(Boolean, nullable=False, default=False, index=True)
    display_order = Column(Integer, default=0)
    title = Column(String(255), nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    product = relationship("Product", back_populates="images")

    __table_args__ = (
        UniqueConstraint("product_id", "url", name="uq_images_product_url"),
    )


class Document(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    url = Column(String(512), nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False, default="PDF")
    title = Column(String(255), nullable=True)
    language = Column(String(10), default="en")

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    product = relationship("Product", back_populates="documents")

    __table_args__ = (
        UniqueConstraint("product_id", "url", name="uq_documents_product_url"),
    )


class ProductProperty(Base):
    __tablename__ = "product_properties"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False, index=True)
    value = Column(Text, nullable=True)
    language = Column(String(5), nullable=False, default="en")
    group = Column(String(100), nullable=True, index=True)
    display_order = Column(Integer, default=0)
    is_filterable = Column(Boolean, nullable=False, default=False)
    is_public = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    product = relationship("Product", back_populates="properties")

    __table_args__ = (
        UniqueConstraint("product_id", "name", "language", name="uq_product_properties_product_name_lang"),
    )
