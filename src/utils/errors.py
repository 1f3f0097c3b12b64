"""Error handling utilities."""

from typing import Optional


class ListingSyncError(Exception):
    """Base exception for the listing sync backend."""
    pass


class ConfigurationError(ListingSyncError):
    """Required configuration is missing."""
    pass


class SupabaseError(ListingSyncError):
    """Supabase operation error."""
    pass


class FeedError(ListingSyncError):
    """MLS feed request failed. Always fatal for the run that issued it."""
    pass


class FeedAPIError(FeedError):
    """MLS feed returned a non-success response."""

    def __init__(self, status_code: int, body: str = "", offset: Optional[int] = None):
        self.status_code = status_code
        self.body = body
        self.offset = offset
        super().__init__(f"API error: {status_code}")


class FeedTransportError(FeedError):
    """MLS feed unreachable or timed out."""
    pass


class ReconcileError(ListingSyncError):
    """A single record could not be reconciled against the catalog."""
    pass


class DuplicateNaturalKeyError(ReconcileError):
    """More than one catalog row shares a natural key."""

    def __init__(self, table: str, key_name: str, key_value: str, count: int):
        self.table = table
        self.key_name = key_name
        self.key_value = key_value
        self.count = count
        super().__init__(f"{count} rows in {table} share {key_name}={key_value}")


class SyncInProgressError(ListingSyncError):
    """Another sync run holds the run lock."""

    def __init__(self, running_sync_id: Optional[str] = None):
        self.running_sync_id = running_sync_id
        super().__init__(f"Sync already in progress: {running_sync_id}")


class SyncResumeError(ListingSyncError):
    """No earlier incremental run stopped at the requested offset."""

    def __init__(self, offset: int):
        self.offset = offset
        super().__init__(f"No incremental sync stopped at offset {offset} to resume from")
