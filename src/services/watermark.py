"""Watermark providers for incremental sync."""

from datetime import datetime, timezone
from typing import Optional, Protocol

from pydantic import TypeAdapter, ValidationError

from src.services.supabase_client import CatalogStore
from src.utils.errors import SyncResumeError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

_DATETIME = TypeAdapter(datetime)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp as stored by Postgres, assuming UTC when naive.

    Postgres trims trailing zeros from fractional seconds, so any precision
    from none to microseconds has to be accepted.
    """
    if not value:
        return None
    try:
        parsed = _DATETIME.validate_python(value)
    except ValidationError:
        logger.warning("Unparseable watermark timestamp", value=value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class WatermarkProvider(Protocol):
    """Source of the "modified after" boundary for incremental runs."""

    async def get_watermark(self) -> Optional[datetime]:
        ...

    async def get_resume_watermark(self, offset: int) -> Optional[datetime]:
        """Boundary used by the incremental run that stopped at ``offset``."""
        ...


class SyncLogWatermarkProvider:
    """Watermark = ``completed_at`` of the most recent fully completed run.

    A run that stopped early (``next_offset`` set) never moves the watermark;
    resuming it reuses the boundary it was started with.
    """

    def __init__(self, store: Optional[CatalogStore] = None):
        self.store = store or CatalogStore()

    async def get_watermark(self) -> Optional[datetime]:
        row = await self.store.get_latest_completed_sync_run()
        if not row:
            return None
        return parse_timestamp(row.get("completed_at"))

    async def get_resume_watermark(self, offset: int) -> Optional[datetime]:
        row = await self.store.get_resumable_sync_run(offset)
        if not row:
            raise SyncResumeError(offset)
        return parse_timestamp(row.get("watermark"))


class FixedWatermarkProvider:
    """Constant watermark, for backfills and tests."""

    def __init__(self, watermark: Optional[datetime]):
        self.watermark = watermark

    async def get_watermark(self) -> Optional[datetime]:
        return self.watermark

    async def get_resume_watermark(self, offset: int) -> Optional[datetime]:
        return self.watermark
