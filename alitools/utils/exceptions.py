"""
Domain exceptions raised by the import pipeline and job registry
"""
from typing import Any, Iterable, Optional


class FeedError(Exception):
    """The vendor feed could not be read or understood."""


class FeedNotFoundError(FeedError):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"XML file not found: {path}")


class FeedParseError(FeedError):
    pass


class ImportStageError(Exception):
    """A stage failed while writing `table`; `rows` holds the offending row(s)."""

    def __init__(self, table: str, rows: Iterable[dict], cause: Optional[BaseException] = None, message: str = ""):
        self.table = table
        self.rows = list(rows)
        self.cause = cause
        detail = message or (str(getattr(cause, "orig", None) or cause) if cause else "")
        super().__init__(f"Import into '{table}' failed: {detail}")

    def row_summary(self, limit: int = 5) -> list[dict[str, Any]]:
        return self.rows[:limit]


class ImportJobNotFoundError(Exception):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job with ID {job_id} not found")


class ImportJobStateError(Exception):
    pass


class FeedFetchError(FeedError):
    def __init__(self, url: str, reason: str):
        self.url = url
        super().__init__(f"Failed to fetch XML data from {url}: {reason}")
