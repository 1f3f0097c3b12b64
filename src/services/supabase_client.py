"""Supabase client wrapper and catalog table operations."""

import os
from typing import Any, Optional
from supabase import create_client, Client
from supabase.client import ClientOptions
from src.utils.errors import SupabaseError, SyncInProgressError
import logging

logger = logging.getLogger(__name__)

PROPERTIES_TABLE = "properties"
PROPERTY_IMAGES_TABLE = "property_images"
SYNC_LOG_TABLE = "mls_sync_log"

# PostgREST caps a select at 1000 rows unless ranged
PAGE_ROWS = 1000

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", extra={"url": url})

    return _client


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                extra={"error": str(exc_val), "type": exc_type.__name__}
            )
        return False


def _is_duplicate_key_error(error: Exception) -> bool:
    message = str(error).lower()
    return "duplicate key" in message or "23505" in message


def _first_row(result: Any, failure: str) -> dict:
    if result.data and len(result.data) > 0:
        return result.data[0]
    raise SupabaseError(failure)


class CatalogStore:
    """Table operations used by the listing and media sync.

    Every method wraps driver failures in ``SupabaseError`` so callers deal with
    a single exception type.
    """

    # Properties table operations
    async def find_properties_by_listing_id(self, listing_id: str) -> list[dict]:
        """All catalog rows carrying ``listing_id``. More than one is a data defect."""
        async with SupabaseClient() as client:
            try:
                result = client.table(PROPERTIES_TABLE).select("id, listing_id").eq("listing_id", listing_id).execute()
                return result.data if result.data else []
            except Exception as e:
                raise SupabaseError(f"Failed to look up property {listing_id}: {e}")

    async def insert_property(self, record: dict) -> dict:
        async with SupabaseClient() as client:
            try:
                result = client.table(PROPERTIES_TABLE).insert(record).execute()
                return _first_row(result, "Failed to create property: no data returned")
            except SupabaseError:
                raise
            except Exception as e:
                raise SupabaseError(f"Failed to create property: {e}")

    async def update_property(self, property_id: str, record: dict) -> dict:
        async with SupabaseClient() as client:
            try:
                result = client.table(PROPERTIES_TABLE).update(record).eq("id", property_id).execute()
                return _first_row(result, f"Failed to update property: {property_id}")
            except SupabaseError:
                raise
            except Exception as e:
                raise SupabaseError(f"Failed to update property: {e}")

    async def list_mls_properties(self) -> list[dict]:
        """Provider-sourced catalog rows (``is_mls_listing`` with a listing ID)."""
        rows: list[dict] = []
        async with SupabaseClient() as client:
            try:
                start = 0
                while True:
                    result = (
                        client.table(PROPERTIES_TABLE)
                        .select("id, listing_id, title")
                        .eq("is_mls_listing", True)
                        .not_.is_("listing_id", "null")
                        .order("id")
                        .range(start, start + PAGE_ROWS - 1)
                        .execute()
                    )
                    page = result.data or []
                    rows.extend(page)
                    if len(page) < PAGE_ROWS:
                        return rows
                    start += PAGE_ROWS
            except Exception as e:
                raise SupabaseError(f"Failed to fetch MLS properties: {e}")

    # Property images table operations
    async def find_images_by_media_key(self, media_key: str) -> list[dict]:
        async with SupabaseClient() as client:
            try:
                result = client.table(PROPERTY_IMAGES_TABLE).select("id, property_id, media_key").eq("media_key", media_key).execute()
                return result.data if result.data else []
            except Exception as e:
                raise SupabaseError(f"Failed to look up image {media_key}: {e}")

    async def insert_image(self, record: dict) -> dict:
        async with SupabaseClient() as client:
            try:
                result = client.table(PROPERTY_IMAGES_TABLE).insert(record).execute()
                return _first_row(result, "Failed to create property image: no data returned")
            except SupabaseError:
                raise
            except Exception as e:
                raise SupabaseError(f"Failed to create property image: {e}")

    async def update_image(self, image_id: str, record: dict) -> dict:
        async with SupabaseClient() as client:
            try:
                result = client.table(PROPERTY_IMAGES_TABLE).update(record).eq("id", image_id).execute()
                return _first_row(result, f"Failed to update property image: {image_id}")
            except SupabaseError:
                raise
            except Exception as e:
                raise SupabaseError(f"Failed to update property image: {e}")

    # Sync log table operations
    async def get_running_sync_runs(self) -> list[dict]:
        async with SupabaseClient() as client:
            try:
                result = client.table(SYNC_LOG_TABLE).select("*").eq("status", "running").order("started_at").execute()
                return result.data if result.data else []
            except Exception as e:
                raise SupabaseError(f"Failed to get running sync runs: {e}")

    async def create_sync_run(self, record: dict) -> dict:
        """Insert a ``running`` sync row.

        The table allows one running row at a time (partial unique index), so a
        duplicate key here means another run won the race.
        """
        async with SupabaseClient() as client:
            try:
                result = client.table(SYNC_LOG_TABLE).insert(record).execute()
                return _first_row(result, "Failed to create sync run: no data returned")
            except SupabaseError:
                raise
            except Exception as e:
                if _is_duplicate_key_error(e):
                    raise SyncInProgressError()
                raise SupabaseError(f"Failed to create sync run: {e}")

    async def update_sync_run(self, sync_run_id: str, updates: dict) -> dict:
        async with SupabaseClient() as client:
            try:
                result = client.table(SYNC_LOG_TABLE).update(updates).eq("id", sync_run_id).execute()
                return _first_row(result, f"Failed to update sync run: {sync_run_id}")
            except SupabaseError:
                raise
            except Exception as e:
                raise SupabaseError(f"Failed to update sync run: {e}")

    async def get_latest_completed_sync_run(self) -> Optional[dict]:
        """Newest ``completed`` run that drained the feed. Truncated runs never qualify."""
        async with SupabaseClient() as client:
            try:
                result = (
                    client.table(SYNC_LOG_TABLE)
                    .select("*")
                    .eq("status", "completed")
                    .not_.is_("completed_at", "null")
                    .is_("next_offset", "null")
                    .order("completed_at", desc=True)
                    .limit(1)
                    .execute()
                )
                return result.data[0] if result.data and len(result.data) > 0 else None
            except Exception as e:
                raise SupabaseError(f"Failed to get latest completed sync run: {e}")

    async def get_resumable_sync_run(self, next_offset: int) -> Optional[dict]:
        """Newest finished incremental run that stopped at ``next_offset``."""
        async with SupabaseClient() as client:
            try:
                result = (
                    client.table(SYNC_LOG_TABLE)
                    .select("*")
                    .eq("sync_type", "incremental")
                    .eq("next_offset", next_offset)
                    .neq("status", "running")
                    .order("started_at", desc=True)
                    .limit(1)
                    .execute()
                )
                return result.data[0] if result.data else None
            except Exception as e:
                raise SupabaseError(f"Failed to get resumable sync run: {e}")

    async def get_recent_sync_runs(self, limit: int = 10) -> list[dict]:
        """Newest runs first, for the admin history view."""
        async with SupabaseClient() as client:
            try:
                result = client.table(SYNC_LOG_TABLE).select("*").order("started_at", desc=True).limit(limit).execute()
                return result.data if result.data else []
            except Exception as e:
                raise SupabaseError(f"Failed to get sync history: {e}")
