"""
Feed reader - loads the GEKO XML file from disk into memory and parses it
into an element tree.
"""
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from alitools.utils.exceptions import FeedNotFoundError, FeedParseError

logger = logging.getLogger(__name__)


@dataclass
class FeedDocument:
    path: Path
    size_bytes: int
    modified_at: datetime
    root: Optional[ET.Element]

    @property
    def size_mb(self) -> float:
        return self.size_bytes / (1024 * 1024)


def parse_xml(data: Union[bytes, str]) -> ET.Element:
    """Parse raw XML, raising FeedParseError on malformed input."""
    if isinstance(data, str):
        data = data.strip().encode("utf-8")
    else:
        data = data.strip()
    if not data:
        raise FeedParseError("No data found in XML")
    try:
        return ET.fromstring(data)
    except ET.ParseError as e:
        raise FeedParseError(f"Failed to parse XML: {e}") from e


def read_feed(path: Union[str, Path]) -> FeedDocument:
    """Read and parse the feed file at `path`."""
    feed_path = Path(path)
    if not feed_path.is_file():
        raise FeedNotFoundError(str(feed_path))

    stat = feed_path.stat()
    document = FeedDocument(
        path=feed_path,
        size_bytes=stat.st_size,
        modified_at=datetime.fromtimestamp(stat.st_mtime),
        root=None,
    )
    logger.info(
        f"Reading XML file {feed_path} "
        f"(size: {document.size_mb:.2f} MB, last modified: {document.modified_at:%Y-%m-%d %H:%M:%S})"
    )

    document.root = parse_xml(feed_path.read_bytes())
    return document
