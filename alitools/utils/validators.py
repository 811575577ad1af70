"""
Input validation and normalization helpers for feed values
"""
import re
from datetime import date, datetime
from typing import Any, Optional
from urllib.parse import urlparse

EAN_RE = re.compile(r"^\d{13}$")
DATE_RE = re.compile(r"(\d{4})[-/](\d{1,2})[-/](\d{1,2})")
TRUE_VALUES = {"true", "1", "yes", "y"}


def normalize_string(value: Any) -> str:
    """Trimmed string form of a scalar, '' for None."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip()


def validate_ean(ean: Optional[str]) -> bool:
    """EAN-13: exactly 13 digits"""
    return bool(ean) and bool(EAN_RE.match(ean))


def validate_url(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def to_float(value: Any, default: float = 0.0) -> float:
    text = normalize_string(value).replace(",", ".")
    if not text:
        return default
    try:
        return float(text)
    except ValueError:
        return default


def to_int(value: Any, default: int = 0) -> int:
    text = normalize_string(value)
    if not text:
        return default
    try:
        return int(float(text.replace(",", ".")))
    except ValueError:
        return default


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return normalize_string(value).lower() in TRUE_VALUES


def parse_date(value: Any) -> Optional[date]:
    """First YYYY-MM-DD (or YYYY/MM/DD) date found in the value."""
    match = DATE_RE.search(normalize_string(value))
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def parse_datetime(value: Any) -> Optional[datetime]:
    parsed = parse_date(value)
    return datetime(parsed.year, parsed.month, parsed.day) if parsed else None


def slugify(text: Any) -> str:
    """Convert a string to slug form (for generating IDs)"""
    slug = normalize_string(text).lower()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^\w\-]+", "", slug)
    slug = re.sub(r"-{2,}", "-", slug)
    return slug.strip("-")
