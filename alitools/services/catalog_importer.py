"""
Catalog importer - writes a mapped GEKO feed into the database.

The import is split into three stages that can run independently and in
order:

    base           categories, producers, units, products, product_categories,
                   variants, documents, properties
    stocks         stocks
    prices_images  prices, images

Each stage runs in one transaction. Natural keys from the feed are resolved to
database ids through lookup maps, and rows are written with
INSERT ... ON CONFLICT DO UPDATE on their unique keys, so re-running a stage
with the same feed changes nothing. Any error rolls the whole stage back.
"""
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Union

from sqlalchemy import select, update, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from alitools.config import get_settings
from alitools.models import (
    Category, Producer, Unit, Product, ProductCategory, Variant, Stock, Price, Image, Document,
    ProductProperty,
)
from alitools.services.feed_reader import parse_xml, read_feed
from alitools.services.geko_parser import FeedBatch, parse_feed
from alitools.services.sync_health import SyncHealthTracker
from alitools.utils.exceptions import FeedError, ImportStageError

settings = get_settings()
logger = logging.getLogger(__name__)

STAGES = ("base", "stocks", "prices_images")


@dataclass
class StageResult:
    stage: str
    counts: dict[str, int] = field(default_factory=dict)
    skipped: dict[str, int] = field(default_factory=dict)
    duration_seconds: float = 0.0


# ---------------------------------------------------------------------- #
# Upsert helpers
# ---------------------------------------------------------------------- #

def _insert_for(dialect_name: str):
    if dialect_name == "postgresql":
        return pg_insert
    if dialect_name == "sqlite":
        return sqlite_insert
    raise ValueError(f"Upsert is not supported for dialect '{dialect_name}'")


async def upsert_rows(
    session: AsyncSession,
    model,
    rows: list[dict[str, Any]],
    conflict_columns: list[str],
    batch_size: Optional[int] = None,
    do_nothing: bool = False,
) -> int:
    """Insert `rows` into `model`'s table, updating existing rows on conflict.

    All rows must carry the same keys. Returns the number of rows written.
    """
    if not rows:
        return 0

    table = model.__table__
    connection = await session.connection()
    insert = _insert_for(connection.dialect.name)
    batch_size = batch_size or settings.IMPORT_BATCH_SIZE

    for start in range(0, len(rows), batch_size):
        chunk = rows[start:start + batch_size]
        stmt = insert(table).values(chunk)
        if do_nothing:
            stmt = stmt.on_conflict_do_nothing(index_elements=conflict_columns)
        else:
            update_columns = {
                name: stmt.excluded[name] for name in chunk[0] if name not in conflict_columns
            }
            if "updated_at" in table.c:
                update_columns["updated_at"] = func.now()
            stmt = stmt.on_conflict_do_update(index_elements=conflict_columns, set_=update_columns)
        try:
            await session.execute(stmt)
        except SQLAlchemyError as e:
            raise ImportStageError(table.name, chunk, cause=e) from e

    logger.info(f"Upserted {len(rows)} rows into {table.name}")
    return len(rows)


async def _key_map(session: AsyncSession, key_column, id_column) -> dict:
    result = await session.execute(select(key_column, id_column))
    return {key: id_ for key, id_ in result.all()}


def _require(table: str, rows: list[dict], *columns: str) -> None:
    for row in rows:
        for column in columns:
            if row.get(column) in (None, ""):
                raise ImportStageError(table, [row], message=f"missing required value '{column}'")


def _resolve(rows, key: str, id_map: dict, id_column: str, skipped: Counter, skip_name: str) -> list[dict]:
    """Replace natural key `key` with `id_column` from `id_map`, dropping unresolved rows."""
    resolved = []
    for row in rows:
        target_id = id_map.get(row[key])
        if target_id is None:
            skipped[skip_name] += 1
            continue
        values = {name: value for name, value in row.items() if name != key}
        values[id_column] = target_id
        resolved.append(values)
    if skipped[skip_name]:
        logger.warning(f"Skipped {skipped[skip_name]} rows: {skip_name}")
    return resolved


# ---------------------------------------------------------------------- #
# Stages
# ---------------------------------------------------------------------- #

async def import_base(session: AsyncSession, batch: FeedBatch) -> tuple[dict[str, int], Counter]:
    counts: dict[str, int] = {}
    skipped: Counter = Counter()

    # Parents first so parent_id always points at an existing row
    categories = sorted(batch.categories.values(), key=lambda row: row["level"])
    _require("categories", categories, "id", "name")
    counts["categories"] = await upsert_rows(session, Category, categories, ["id"])

    producers = list(batch.producers.values())
    counts["producers"] = await upsert_rows(session, Producer, producers, ["name"])
    producer_ids = await _key_map(session, Producer.name, Producer.id)

    units = list(batch.units.values())
    counts["units"] = await upsert_rows(session, Unit, units, ["id"])

    ean_owners = dict((await session.execute(
        select(Product.ean, Product.code).where(Product.ean.isnot(None))
    )).all())

    products = []
    for row in batch.products.values():
        values = {name: value for name, value in row.items() if name != "producer_name"}
        values["producer_id"] = producer_ids.get(row["producer_name"]) if row["producer_name"] else None
        ean = row["ean"]
        if ean and ean_owners.get(ean, row["code"]) != row["code"]:
            logger.warning(
                f"EAN {ean} of product {row['code']} already belongs to product {ean_owners[ean]}, dropping it"
            )
            skipped["ean_conflicts"] += 1
            values["ean"] = None
        products.append(values)
    _require("products", products, "code", "name")
    counts["products"] = await upsert_rows(session, Product, products, ["code"])
    product_ids = await _key_map(session, Product.code, Product.id)

    links = _resolve(
        batch.product_categories.values(), "product_code", product_ids, "product_id",
        skipped, "product_categories_without_product",
    )
    counts["product_categories"] = await upsert_rows(
        session, ProductCategory, links, ["product_id", "category_id"], do_nothing=True
    )

    variants = _resolve(
        batch.variants.values(), "product_code", product_ids, "product_id", skipped, "variants_without_product"
    )
    _require("variants", variants, "code")
    counts["variants"] = await upsert_rows(session, Variant, variants, ["code"])

    documents = _resolve(
        batch.documents.values(), "product_code", product_ids, "product_id", skipped, "documents_without_product"
    )
    counts["documents"] = await upsert_rows(session, Document, documents, ["product_id", "url"])

    properties = _resolve(
        batch.properties.values(), "product_code", product_ids, "product_id", skipped, "properties_without_product"
    )
    counts["properties"] = await upsert_rows(
        session, ProductProperty, properties, ["product_id", "name", "language"]
    )

    return counts, skipped


async def import_stocks(session: AsyncSession, batch: FeedBatch) -> tuple[dict[str, int], Counter]:
    skipped: Counter = Counter()
    variant_ids = await _key_map(session, Variant.code, Variant.id)

    stocks = _resolve(
        batch.stocks.values(), "variant_code", variant_ids, "variant_id", skipped, "stocks_without_variant"
    )
    count = await upsert_rows(session, Stock, stocks, ["variant_id"])
    return {"stocks": count}, skipped


async def import_prices_images(session: AsyncSession, batch: FeedBatch) -> tuple[dict[str, int], Counter]:
    counts: dict[str, int] = {}
    skipped: Counter = Counter()

    variant_ids = await _key_map(session, Variant.code, Variant.id)
    prices = _resolve(
        batch.prices.values(), "variant_code", variant_ids, "variant_id", skipped, "prices_without_variant"
    )
    _require("prices", prices, "gross_price", "price_type", "currency")
    counts["prices"] = await upsert_rows(session, Price, prices, ["variant_id", "price_type", "currency"])

    product_ids = await _key_map(session, Product.code, Product.id)
    images = _resolve(
        batch.images.values(), "product_code", product_ids, "product_id", skipped, "images_without_product"
    )

    # The feed decides the main image; demote whatever was main before
    image_products = sorted({row["product_id"] for row in images})
    batch_size = settings.IMPORT_BATCH_SIZE
    for start in range(0, len(image_products), batch_size):
        await session.execute(
            update(Image)
            .where(Image.product_id.in_(image_products[start:start + batch_size]))
            .values(is_main=False)
        )
    counts["images"] = await upsert_rows(session, Image, images, ["product_id", "url"])

    return counts, skipped


STAGE_FUNCTIONS: dict[str, Callable] = {
    "base": import_base,
    "stocks": import_stocks,
    "prices_images": import_prices_images,
}


# ---------------------------------------------------------------------- #
# Runners
# ---------------------------------------------------------------------- #

def resolve_session_factory(session_factory):
    if session_factory is not None:
        return session_factory
    from alitools.database import AsyncSessionLocal
    return AsyncSessionLocal


async def run_stage(
    stage: str,
    xml_path: Union[str, Path, None] = None,
    session_factory=None,
    batch: Optional[FeedBatch] = None,
    sync_type: Optional[str] = None,
) -> StageResult:
    """Run one stage in its own transaction and record it in sync health.

    The feed is read from `xml_path` unless an already mapped `batch` is given.
    Errors are logged, recorded and re-raised after the rollback.
    """
    if stage not in STAGE_FUNCTIONS:
        raise ValueError(f"Unknown stage '{stage}'. Available: {', '.join(STAGES)}")
    session_factory = resolve_session_factory(session_factory)

    xml_path = str(xml_path or settings.GEKO_XML_PATH)
    tracker = SyncHealthTracker(sync_type=sync_type or f"stage:{stage}", source=xml_path).start()
    started = time.monotonic()
    logger.info(f"Starting {stage} import from {xml_path}")

    try:
        if batch is None:
            document = read_feed(xml_path)
            tracker.request_size_bytes = document.size_bytes
            batch = parse_feed(document.root)

        async with session_factory() as session:
            try:
                counts, skipped = await STAGE_FUNCTIONS[stage](session, batch)
                await session.commit()
            except Exception:
                await session.rollback()
                raise
    except ImportStageError as e:
        logger.error(f"Stage {stage} failed on table '{e.table}', transaction rolled back: {e}")
        for row in e.row_summary():
            logger.error(f"  offending row: {row}")
        tracker.record_error(e.table, str(e), [_jsonable(row) for row in e.row_summary(1)])
        await tracker.finish(session_factory, status="failed")
        raise
    except (FeedError, SQLAlchemyError) as e:
        logger.error(f"Stage {stage} failed: {e}")
        tracker.record_error(type(e).__name__, str(e))
        await tracker.finish(session_factory, status="failed")
        raise
    except Exception as e:
        logger.exception(f"Stage {stage} failed with an unexpected error: {e}")
        tracker.record_error(type(e).__name__, str(e))
        await tracker.finish(session_factory, status="failed")
        raise

    result = StageResult(
        stage=stage,
        counts=counts,
        skipped=dict(skipped),
        duration_seconds=round(time.monotonic() - started, 3),
    )
    tracker.add_items(counts)
    await tracker.finish(
        session_factory,
        status="partial_success" if result.skipped else "success",
        extra_details={"skipped": result.skipped} if result.skipped else None,
    )
    logger.info(f"{stage} import completed in {result.duration_seconds:.2f}s: {counts}")
    return result


async def load_batch(
    source: Union[str, Path],
    session_factory=None,
    content: Optional[bytes] = None,
    sync_type: str = "api_upload",
) -> FeedBatch:
    """Read (or take `content` fetched from `source`) and map the feed.

    A feed that cannot be read or mapped is recorded in sync health as a
    failed `<sync_type>:read` run before the error is re-raised.
    """
    tracker = SyncHealthTracker(sync_type=f"{sync_type}:read", source=str(source)).start()
    try:
        if content is None:
            document = read_feed(source)
            tracker.request_size_bytes = document.size_bytes
            root = document.root
        else:
            tracker.request_size_bytes = len(content)
            root = parse_xml(content)
        return parse_feed(root)
    except Exception as e:
        logger.error(f"Could not load feed {source}: {e}")
        tracker.record_error(type(e).__name__, str(e))
        await tracker.finish(resolve_session_factory(session_factory), status="failed")
        raise


async def run_pipeline(
    xml_path: Union[str, Path],
    session_factory=None,
    should_continue: Optional[Callable[[], bool]] = None,
    on_stage_complete: Optional[Callable[[StageResult], None]] = None,
    sync_type: str = "api_upload",
    content: Optional[bytes] = None,
) -> list[StageResult]:
    """Run all stages in-process against one parse of the feed.

    `xml_path` names the feed; when `content` is given it holds the feed
    already downloaded from that location. `should_continue` is checked
    before each stage; a False answer stops the run without error. The first
    failing stage raises and later stages are not run.
    """
    batch = await load_batch(xml_path, session_factory=session_factory, content=content, sync_type=sync_type)

    results = []
    for stage in STAGES:
        if should_continue is not None and not should_continue():
            logger.info(f"Import of {xml_path} cancelled before stage {stage}")
            break
        result = await run_stage(
            stage, xml_path, session_factory=session_factory, batch=batch, sync_type=f"{sync_type}:{stage}"
        )
        results.append(result)
        if on_stage_complete is not None:
            on_stage_complete(result)
    return results


def _jsonable(row: dict) -> dict:
    return {
        name: value if value is None or isinstance(value, (str, int, float, bool)) else str(value)
        for name, value in row.items()
    }
