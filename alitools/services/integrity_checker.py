"""
Post-import integrity checks: orphaned foreign keys, catalog completeness and
per-table row counts.
"""
import logging
from dataclasses import dataclass, field

from sqlalchemy import select, func, exists, and_
from sqlalchemy.ext.asyncio import AsyncSession

from alitools.models import (
    Category, Producer, Unit, Product, ProductCategory, Variant, Stock, Price, Image, Document,
    ProductProperty, SyncHealth,
)

logger = logging.getLogger(__name__)

# (check name, child model, reference column, parent key). A row is orphaned
# when its non-null reference has no parent row; None means categories.id.
ORPHAN_CHECKS = (
    ("products.category_id", Product, Product.category_id, Category.id),
    ("products.producer_id", Product, Product.producer_id, Producer.id),
    ("products.unit_id", Product, Product.unit_id, Unit.id),
    ("categories.parent_id", Category, Category.parent_id, None),
    ("variants.product_id", Variant, Variant.product_id, Product.id),
    ("stocks.variant_id", Stock, Stock.variant_id, Variant.id),
    ("prices.variant_id", Price, Price.variant_id, Variant.id),
    ("images.product_id", Image, Image.product_id, Product.id),
    ("documents.product_id", Document, Document.product_id, Product.id),
    ("product_properties.product_id", ProductProperty, ProductProperty.product_id, Product.id),
    ("product_categories.product_id", ProductCategory, ProductCategory.product_id, Product.id),
    ("product_categories.category_id", ProductCategory, ProductCategory.category_id, Category.id),
)

COUNTED_MODELS = (
    Category, Producer, Unit, Product, ProductCategory, Variant, Stock, Price, Image, Document,
    ProductProperty, SyncHealth,
)


@dataclass
class IntegrityReport:
    orphans: dict[str, int] = field(default_factory=dict)
    catalog: dict[str, int] = field(default_factory=dict)

    @property
    def orphan_total(self) -> int:
        return sum(self.orphans.values())

    @property
    def is_clean(self) -> bool:
        return self.orphan_total == 0

    def to_dict(self) -> dict:
        return {
            "orphans": self.orphans,
            "catalog": self.catalog,
            "orphan_total": self.orphan_total,
            "is_clean": self.is_clean,
        }


async def _count(session: AsyncSession, stmt) -> int:
    return (await session.execute(stmt)).scalar_one() or 0


async def _count_orphans(session: AsyncSession, model, column, parent_column) -> int:
    if parent_column is None:
        # self-reference on categories
        parent = Category.__table__.alias("parent")
        parent_column = parent.c.id
    stmt = (
        select(func.count())
        .select_from(model)
        .where(column.isnot(None), ~exists().where(parent_column == column))
    )
    return await _count(session, stmt)


async def check_integrity(session: AsyncSession) -> IntegrityReport:
    report = IntegrityReport()

    for name, model, column, parent_column in ORPHAN_CHECKS:
        report.orphans[name] = await _count_orphans(session, model, column, parent_column)

    product_count = select(func.count()).select_from(Product)
    report.catalog["products_null_code"] = await _count(session, product_count.where(Product.code.is_(None)))
    report.catalog["products_without_variants"] = await _count(
        session, product_count.where(~exists().where(Variant.product_id == Product.id))
    )
    report.catalog["products_without_images"] = await _count(
        session, product_count.where(~exists().where(Image.product_id == Product.id))
    )
    report.catalog["products_without_main_image"] = await _count(
        session,
        product_count.where(~exists().where(and_(Image.product_id == Product.id, Image.is_main.is_(True)))),
    )
    report.catalog["active_products_without_active_price"] = await _count(
        session,
        product_count.where(
            Product.status == "active",
            ~exists().where(
                and_(Variant.product_id == Product.id, Price.variant_id == Variant.id, Price.is_active.is_(True))
            ),
        ),
    )

    if report.is_clean:
        logger.info("Integrity check passed: no orphaned rows")
    else:
        failing = {name: count for name, count in report.orphans.items() if count}
        logger.warning(f"Integrity check found {report.orphan_total} orphaned rows: {failing}")
    return report


async def count_rows(session: AsyncSession) -> dict[str, int]:
    counts = {}
    for model in COUNTED_MODELS:
        counts[model.__tablename__] = await _count(session, select(func.count()).select_from(model))
    return counts
