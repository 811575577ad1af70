"""
GEKO XML mapper.

Walks a parsed feed and emits flat candidate rows per entity. Rows refer to
each other by natural key only (product code, variant code, category id,
producer name, unit id); the importer resolves those to database ids.

Tag and attribute names are matched case-insensitively and every scalar is
read from an attribute first, then from a child element of the same name.
"""
import logging
import xml.etree.ElementTree as ET
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from alitools.utils.exceptions import FeedParseError
from alitools.utils.validators import (
    normalize_string, validate_ean, validate_url, to_float, to_int, to_bool, parse_date, parse_datetime, slugify,
)

logger = logging.getLogger(__name__)

PATH_SEPARATOR = "/"

# Natural keys longer than their columns are skipped rather than cut
PRODUCT_CODE_MAX = 100
VARIANT_CODE_MAX = 150

# Scalar product fields kept as product properties
PROPERTY_FIELDS = (
    "brand", "manufacturer", "condition", "warranty", "material",
    "keywords", "seo_title", "seo_keywords", "seo_description",
)

DOCUMENT_TYPES = {
    "pdf": "PDF",
    "doc": "Word Document",
    "docx": "Word Document",
    "xls": "Excel Document",
    "xlsx": "Excel Document",
    "txt": "Text Document",
    "zip": "Archive",
    "rar": "Archive",
}


def _tag(elem: ET.Element) -> str:
    tag = elem.tag if isinstance(elem.tag, str) else ""
    if "}" in tag:
        tag = tag.rsplit("}", 1)[1]
    return tag.lower()


def _child(elem: Optional[ET.Element], name: str) -> Optional[ET.Element]:
    if elem is None:
        return None
    for child in elem:
        if _tag(child) == name:
            return child
    return None


def _children(elem: Optional[ET.Element], name: str) -> list[ET.Element]:
    if elem is None:
        return []
    return [child for child in elem if _tag(child) == name]


def _own_text(elem: Optional[ET.Element]) -> str:
    if elem is None or len(elem):
        return ""
    return normalize_string(elem.text)


def _is_structured(elem: ET.Element) -> bool:
    return bool(len(elem) or elem.attrib)


def _value(elem: Optional[ET.Element], *names: str) -> str:
    """First non-empty value among `names`, attribute before child element."""
    if elem is None:
        return ""
    attrs = {key.lower(): value for key, value in elem.attrib.items()}
    for name in names:
        value = normalize_string(attrs.get(name))
        if value:
            return value
        value = _own_text(_child(elem, name))
        if value:
            return value
    return ""


def _clip(value: Optional[str], length: int) -> Optional[str]:
    return value[:length] if value else None


def _segments(path: str) -> list[str]:
    return [s.strip() for s in path.split(PATH_SEPARATOR) if s.strip()]


def infer_document_type(url: str) -> str:
    """Document type from the file extension of `url`."""
    last_segment = url.split("?", 1)[0].split("#", 1)[0].rsplit("/", 1)[-1]
    if "." not in last_segment:
        return "UNKNOWN"
    extension = last_segment.rsplit(".", 1)[1].lower()
    return DOCUMENT_TYPES.get(extension, extension.upper() or "UNKNOWN")


@dataclass
class FeedBatch:
    """Candidate rows of one feed, keyed by natural key."""
    categories: dict[str, dict] = field(default_factory=dict)
    producers: dict[str, dict] = field(default_factory=dict)
    units: dict[str, dict] = field(default_factory=dict)
    products: dict[str, dict] = field(default_factory=dict)
    product_categories: dict[tuple, dict] = field(default_factory=dict)
    variants: dict[str, dict] = field(default_factory=dict)
    stocks: dict[str, dict] = field(default_factory=dict)
    prices: dict[tuple, dict] = field(default_factory=dict)
    images: dict[tuple, dict] = field(default_factory=dict)
    documents: dict[tuple, dict] = field(default_factory=dict)
    properties: dict[tuple, dict] = field(default_factory=dict)
    skipped: Counter = field(default_factory=Counter)

    ENTITIES = (
        "categories", "producers", "units", "products", "product_categories", "variants",
        "stocks", "prices", "images", "documents", "properties",
    )

    def counts(self) -> dict[str, int]:
        return {name: len(getattr(self, name)) for name in self.ENTITIES}


class GekoFeedParser:
    """Maps one GEKO document into a FeedBatch. Use a fresh instance per feed."""

    def __init__(self):
        self.batch = FeedBatch()
        self._category_by_path: dict[str, str] = {}
        self._category_parent_path: dict[str, Optional[str]] = {}
        self._synthetic_categories: set[str] = set()
        self._ean_owner: dict[str, str] = {}

    def parse(self, root: ET.Element) -> FeedBatch:
        nodes = self._product_nodes(root)
        logger.info(f"Found {len(nodes)} products in XML")

        for node in nodes:
            self._process_product(node)

        self._link_categories()

        counts = self.batch.counts()
        logger.info(
            "Parsed feed: " + ", ".join(f"{count} {name}" for name, count in counts.items())
        )
        if self.batch.skipped:
            logger.warning(f"Skipped during mapping: {dict(self.batch.skipped)}")
        return self.batch

    # ------------------------------------------------------------------ #
    # Document structure
    # ------------------------------------------------------------------ #

    @staticmethod
    def _product_nodes(root: ET.Element) -> list[ET.Element]:
        root_tag = _tag(root)
        if root_tag in ("geko", "offer"):
            container = _child(root, "products")
            if container is not None:
                return _children(container, "product")
            if root_tag == "offer":
                items = _children(root, "item")
                if items:
                    return items
        raise FeedParseError(f"Unexpected XML structure: products container not found under <{root_tag}>")

    # ------------------------------------------------------------------ #
    # Products
    # ------------------------------------------------------------------ #

    def _process_product(self, node: ET.Element) -> None:
        code = _value(node, "code", "id")
        if not code:
            self.batch.skipped["products_without_code"] += 1
            return
        if len(code) > PRODUCT_CODE_MAX:
            logger.warning(f"Product code {code[:40]}... exceeds {PRODUCT_CODE_MAX} characters, skipping")
            self.batch.skipped["products_with_long_code"] += 1
            return
        if code in self.batch.products:
            logger.warning(f"Duplicate product code {code} in feed, keeping the first occurrence")
            self.batch.skipped["duplicate_products"] += 1
            return

        name, short, long_, html = self._descriptions(node)
        if not name:
            logger.warning(f"Product {code} has no name, skipping")
            self.batch.skipped["products_without_name"] += 1
            return

        vat = to_float(_value(node, "vat"), 0.0)
        discontinued = to_bool(_value(node, "discontinued"))
        category_id = self._process_category(node)

        self.batch.products[code] = {
            "code": code,
            "code_on_card": _clip(_value(node, "code_on_card"), 50),
            "ean": self._claim_ean(_value(node, "ean"), code),
            "producer_code": _clip(_value(node, "code_producer", "producer_code"), 50),
            "name": name[:255],
            "description_short": short or None,
            "description_long": long_ or None,
            "description_html": html or None,
            "url": _clip(_value(_child(node, "card"), "url") or _value(node, "url"), 512),
            "vat": vat,
            "status": "discontinued" if discontinued else (_value(node, "status") or "active").lower()[:20],
            "discontinued": discontinued,
            "delivery_date": parse_date(_value(node, "delivery", "delivery_date")),
            "category_id": category_id,
            "producer_name": self._process_producer(node),
            "unit_id": self._process_unit(node),
        }
        if category_id:
            self.batch.product_categories[(code, category_id)] = {
                "product_code": code,
                "category_id": category_id,
            }

        self._process_variants(node, code, vat)
        self._process_images(node, code)
        self._process_documents(node, code)
        self._process_properties(node, code)

    @staticmethod
    def _descriptions(node: ET.Element) -> tuple[str, str, str, str]:
        description = _child(node, "description")
        if description is not None and len(description):
            name = _value(description, "name", "n") or _value(node, "name", "title")
            return (
                name,
                _value(description, "short_desc", "short"),
                _value(description, "long_desc", "long"),
                _value(description, "description"),
            )
        if description is not None:
            long_ = _own_text(description)
            return _value(node, "name", "title") or long_, "", long_, ""
        return (
            _value(node, "name", "title"),
            _value(node, "short_description", "summary"),
            _value(node, "long_description", "full_description"),
            _value(node, "html_description"),
        )

    def _claim_ean(self, ean: str, owner: str) -> Optional[str]:
        if not ean:
            return None
        if not validate_ean(ean):
            logger.warning(f"Invalid EAN format for {owner}: {ean}")
            self.batch.skipped["invalid_eans"] += 1
            return None
        holder = self._ean_owner.get(ean)
        if holder is not None:
            logger.warning(f"EAN {ean} already used by {holder}, dropping it for {owner}")
            self.batch.skipped["duplicate_eans"] += 1
            return None
        self._ean_owner[ean] = owner
        return ean

    # ------------------------------------------------------------------ #
    # Categories, producers, units
    # ------------------------------------------------------------------ #

    def _process_category(self, node: ET.Element) -> Optional[str]:
        category = _child(node, "category")
        idosell_path = _value(_child(node, "category_idosell"), "path")

        cat_id = name = path = ""
        if category is not None and _is_structured(category):
            cat_id = _value(category, "id")
            name = _value(category, "name", "n")
            path = _value(category, "path")
        elif category is not None:
            text = _own_text(category)
            if text:
                cat_id = f"category-{slugify(text)}"
                name = text
                path = text

        if not cat_id and not name and idosell_path:
            path = idosell_path
            cat_id = f"idosell-{slugify(idosell_path.replace(PATH_SEPARATOR, ' '))}"
        if not cat_id and name:
            cat_id = f"category-{slugify(name)}"
        if not cat_id or cat_id.endswith("-"):
            return None

        # a path made only of separators falls back to the name, then to the id itself
        segments = _segments(path) or _segments(name) or [cat_id]
        self._register_category(cat_id, name or segments[-1], segments, idosell_path)
        return cat_id

    def _register_category(self, cat_id: str, name: str, segments: list[str], idosell_path: str) -> None:
        categories = self.batch.categories
        if cat_id in categories and cat_id not in self._synthetic_categories:
            return

        for depth in range(1, len(segments)):
            prefix = PATH_SEPARATOR.join(segments[:depth])
            if prefix in self._category_by_path:
                continue
            ancestor_id = f"path-{slugify(prefix.replace(PATH_SEPARATOR, ' '))}"
            categories[ancestor_id] = {
                "id": ancestor_id,
                "name": segments[depth - 1][:255],
                "path": prefix,
                "idosell_path": None,
                "parent_id": None,
                "level": depth - 1,
                "is_active": True,
            }
            self._synthetic_categories.add(ancestor_id)
            self._category_parent_path[ancestor_id] = PATH_SEPARATOR.join(segments[:depth - 1]) or None
            self._category_by_path[prefix] = ancestor_id

        path = PATH_SEPARATOR.join(segments)
        holder = self._category_by_path.get(path)
        if holder in self._synthetic_categories and holder != cat_id:
            # a real category takes over the path of its synthetic stand-in
            del categories[holder]
            self._synthetic_categories.discard(holder)
            self._category_parent_path.pop(holder, None)
            holder = None
        if holder is None:
            self._category_by_path[path] = cat_id

        self._synthetic_categories.discard(cat_id)
        categories[cat_id] = {
            "id": cat_id,
            "name": name[:255],
            "path": path,
            "idosell_path": idosell_path or None,
            "parent_id": None,
            "level": max(len(segments) - 1, 0),
            "is_active": True,
        }
        self._category_parent_path[cat_id] = PATH_SEPARATOR.join(segments[:-1]) or None

    def _link_categories(self) -> None:
        for cat_id, row in self.batch.categories.items():
            parent_path = self._category_parent_path.get(cat_id)
            parent_id = self._category_by_path.get(parent_path) if parent_path else None
            row["parent_id"] = parent_id if parent_id != cat_id else None

    def _process_producer(self, node: ET.Element) -> Optional[str]:
        producer = _child(node, "producer")
        if producer is None:
            return None
        if _is_structured(producer):
            name = _value(producer, "name", "n")
            description = _value(producer, "description")
            website = _value(producer, "website", "url")
        else:
            name, description, website = _own_text(producer), "", ""
        if not name:
            return None
        name = name[:255]
        if name not in self.batch.producers:
            self.batch.producers[name] = {
                "name": name,
                "description": description or None,
                "website": _clip(website, 512),
                "is_active": True,
            }
        return name

    def _process_unit(self, node: ET.Element) -> Optional[str]:
        unit = _child(node, "unit")
        if unit is None:
            return None
        if _is_structured(unit):
            unit_id = _value(unit, "id")
            name = _value(unit, "name", "n")
            moq = to_int(_value(unit, "moq"), 1)
        else:
            unit_id, name, moq = "", _own_text(unit), 1
        if not unit_id and slugify(name):
            unit_id = f"unit-{slugify(name)}"
        if not unit_id:
            return None
        if unit_id not in self.batch.units:
            self.batch.units[unit_id] = {"id": unit_id, "name": (name or unit_id)[:100], "moq": max(moq, 1)}
        return unit_id

    # ------------------------------------------------------------------ #
    # Variants, stock and prices
    # ------------------------------------------------------------------ #

    def _process_variants(self, node: ET.Element, code: str, vat: float) -> None:
        nodes = _children(_child(node, "variants"), "variant") + _children(_child(node, "sizes"), "size")

        if not nodes:
            variant_code = f"{code}-default"
            self._add_variant(node, variant_code, code, name="Default", ean=None, vat=vat)
            return

        for position, variant_node in enumerate(nodes, start=1):
            variant_code = _value(variant_node, "code") or f"{code}-{_value(variant_node, 'id') or position}"
            if len(variant_code) > VARIANT_CODE_MAX:
                logger.warning(f"Variant code {variant_code[:40]}... exceeds {VARIANT_CODE_MAX} characters, skipping")
                self.batch.skipped["variants_with_long_code"] += 1
                continue
            if variant_code in self.batch.variants:
                logger.warning(f"Duplicate variant code {variant_code} in feed, keeping the first occurrence")
                self.batch.skipped["duplicate_variants"] += 1
                continue
            self._add_variant(
                variant_node,
                variant_code,
                code,
                name=_value(variant_node, "name", "n") or None,
                ean=self._claim_ean(_value(variant_node, "ean"), variant_code),
                vat=vat,
            )

    def _add_variant(self, node: ET.Element, variant_code: str, product_code: str,
                     name: Optional[str], ean: Optional[str], vat: float) -> None:
        weight = _value(node, "weight")
        gross_weight = _value(node, "gross_weight", "grossweight")
        self.batch.variants[variant_code] = {
            "code": variant_code,
            "product_code": product_code,
            "name": _clip(name, 255),
            "size": _clip(_value(node, "size_value", "size"), 50),
            "color": _clip(_value(node, "color", "colour"), 50),
            "weight": to_float(weight) if weight else None,
            "gross_weight": to_float(gross_weight) if gross_weight else None,
            "ean": ean,
            "status": (_value(node, "status") or "active").lower()[:20],
        }

        stock = _children(node, "stock")
        if stock:
            self._add_stock(stock[-1], variant_code)

        for price_node in _children(node, "price") + _children(_child(node, "prices"), "price"):
            self._add_price(price_node, variant_code, vat, default_type="retail")
        for srp_node in _children(node, "srp"):
            self._add_price(srp_node, variant_code, vat, default_type="suggested")

    def _add_stock(self, node: ET.Element, variant_code: str) -> None:
        quantity = to_int(_value(node, "quantity", "amount") or _own_text(node), 0)
        status = _value(node, "status").lower()
        available = to_bool(_value(node, "available")) or status in ("available", "in_stock") or quantity > 0
        self.batch.stocks[variant_code] = {
            "variant_code": variant_code,
            "quantity": quantity,
            "available": available,
            "min_order_quantity": max(to_int(_value(node, "min_order_quantity", "moq"), 1), 1),
            "max_order_quantity": to_int(_value(node, "max_order_quantity"), 0) or None,
            "warehouse": _clip(_value(node, "warehouse", "warehouse_location"), 100),
            "availability_date": parse_datetime(_value(node, "availability_date")),
        }

    def _add_price(self, node: ET.Element, variant_code: str, vat: float, default_type: str) -> None:
        gross_raw = _value(node, "gross", "value", "amount") or _own_text(node)
        net_raw = _value(node, "net")
        if not gross_raw and not net_raw:
            self.batch.skipped["prices_without_amount"] += 1
            return

        price_type = (_value(node, "type", "price_type") or default_type).lower()[:20]
        currency = (_value(node, "currency") or "EUR").upper()[:3]
        self._put_price(
            variant_code, price_type, currency,
            gross=to_float(gross_raw) if gross_raw else None,
            net=to_float(net_raw) if net_raw else None,
            vat=vat,
            min_quantity=max(to_int(_value(node, "min_quantity"), 1), 1),
            valid_from=parse_datetime(_value(node, "valid_from")),
            valid_to=parse_datetime(_value(node, "valid_to")),
        )

        discount = _value(node, "discount_value", "discount")
        if discount:
            self._put_price(
                variant_code, "promotional", currency,
                gross=to_float(discount), net=None, vat=vat, min_quantity=1,
                valid_from=parse_datetime(_value(node, "discount_start")),
                valid_to=parse_datetime(_value(node, "discount_end")),
            )

    def _put_price(self, variant_code: str, price_type: str, currency: str, gross: Optional[float],
                   net: Optional[float], vat: float, min_quantity: int, valid_from, valid_to) -> None:
        key = (variant_code, price_type, currency)
        if key in self.batch.prices:
            self.batch.skipped["duplicate_prices"] += 1
            return
        rate = 1 + vat / 100
        if gross is None:
            gross = round(net * rate, 2)
        if net is None:
            net = round(gross / rate, 2) if rate > 0 else gross
        self.batch.prices[key] = {
            "variant_code": variant_code,
            "price_type": price_type,
            "currency": currency,
            "gross_price": gross,
            "net_price": net,
            "min_quantity": min_quantity,
            "valid_from": valid_from,
            "valid_to": valid_to,
            "is_active": True,
        }

    # ------------------------------------------------------------------ #
    # Images, documents, properties
    # ------------------------------------------------------------------ #

    def _process_images(self, node: ET.Element, code: str) -> None:
        rows = []
        seen = set()
        for position, image_node in enumerate(_children(_child(node, "images"), "image"), start=1):
            url = _value(image_node, "url", "src", "path") or _own_text(image_node)
            if not url:
                self.batch.skipped["images_without_url"] += 1
                continue
            if not validate_url(url):
                logger.warning(f"Invalid image URL for {code}: {url[:100]}")
                self.batch.skipped["invalid_image_urls"] += 1
                continue
            url = url[:512]
            if url in seen:
                self.batch.skipped["duplicate_images"] += 1
                continue
            seen.add(url)
            rows.append({
                "product_code": code,
                "url": url,
                "is_main": to_bool(_value(image_node, "is_main", "main")),
                "display_order": to_int(_value(image_node, "order", "display_order"), position) or position,
                "title": _clip(_value(image_node, "title", "alt"), 255),
            })

        if not rows:
            return
        main = next((row for row in rows if row["is_main"]), rows[0])
        for row in rows:
            row["is_main"] = row is main
            self.batch.images[(code, row["url"])] = row

    def _process_documents(self, node: ET.Element, code: str) -> None:
        for position, doc_node in enumerate(_children(_child(node, "documents"), "document"), start=1):
            url = _value(doc_node, "url", "href", "link") or _own_text(doc_node)
            if not url:
                self.batch.skipped["documents_without_url"] += 1
                continue
            if not validate_url(url):
                logger.warning(f"Invalid document URL for {code}: {url[:100]}")
                self.batch.skipped["invalid_document_urls"] += 1
                continue
            key = (code, url[:512])
            if key in self.batch.documents:
                self.batch.skipped["duplicate_documents"] += 1
                continue
            self.batch.documents[key] = {
                "product_code": code,
                "url": url[:512],
                "name": (_value(doc_node, "name", "title") or f"Document {position}")[:255],
                "type": (_value(doc_node, "type") or infer_document_type(url))[:50],
                "title": _clip(_value(doc_node, "title"), 255),
                "language": (_value(doc_node, "language", "lang") or "en")[:10],
            }

    def _process_properties(self, node: ET.Element, code: str) -> None:
        order = 0
        for section_name in ("properties", "attributes"):
            section = _child(node, section_name)
            if section is None:
                continue
            items = _children(section, "property") + _children(section, "attribute")
            if items:
                for item in items:
                    order += 1
                    self._add_property(
                        code,
                        _value(item, "name", "n"),
                        _value(item, "value", "v") or _own_text(item),
                        language=_value(item, "language", "lang") or "en",
                        group=_value(item, "group") or None,
                        display_order=order,
                        is_filterable=to_bool(_value(item, "filterable", "is_filterable")),
                    )
            else:
                for child in section:
                    order += 1
                    self._add_property(code, _tag(child), _own_text(child), display_order=order)

        for name in PROPERTY_FIELDS:
            value = _value(node, name)
            if value:
                order += 1
                self._add_property(code, name, value, group="product", display_order=order)

    def _add_property(self, code: str, name: str, value: str, language: str = "en",
                      group: Optional[str] = None, display_order: int = 0, is_filterable: bool = False) -> None:
        if not name:
            self.batch.skipped["properties_without_name"] += 1
            return
        language = language.lower()[:5]
        key = (code, name[:255], language)
        if key in self.batch.properties:
            self.batch.skipped["duplicate_properties"] += 1
            return
        self.batch.properties[key] = {
            "product_code": code,
            "name": name[:255],
            "value": value or None,
            "language": language,
            "group": _clip(group, 100),
            "display_order": display_order,
            "is_filterable": is_filterable,
            "is_public": True,
        }


def parse_feed(root: ET.Element) -> FeedBatch:
    """Map a parsed GEKO document into candidate rows."""
    return GekoFeedParser().parse(root)
