"""Request and response shapes for the sync trigger endpoints."""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from src.models.sync_run import SyncErrorEntry, SyncStatus, SyncType


MAX_SYNC_LIMIT = 5000
MAX_REPORTED_ERRORS = 10


class CamelModel(BaseModel):
    """Base model that serializes with camelCase keys."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SyncRequest(CamelModel):
    """Body of ``POST /api/mls/sync``."""
    sync_type: SyncType = Field(default=SyncType.FULL, description="full or incremental")
    limit: int = Field(default=100, ge=1, le=MAX_SYNC_LIMIT, description="Requested record cap")
    min_price: Optional[float] = Field(None, ge=0)
    max_price: Optional[float] = Field(None, ge=0)
    county: Optional[str] = None
    property_types: Optional[list[str]] = None
    start_offset: int = Field(default=0, ge=0, description="Feed offset to resume from")

    @model_validator(mode="before")
    @classmethod
    def accept_mode_alias(cls, data: Any) -> Any:
        # The admin panel sends syncType; schedulers send mode
        if isinstance(data, dict) and "mode" in data and "syncType" not in data and "sync_type" not in data:
            data = dict(data)
            data["syncType"] = data.pop("mode")
        return data

    @model_validator(mode="after")
    def check_price_range(self) -> "SyncRequest":
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValueError("minPrice must not exceed maxPrice")
        return self


class SyncSummary(CamelModel):
    """Structured result of one property sync run."""
    success: bool
    sync_log_id: Optional[str] = None
    status: SyncStatus
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    error_count: int = 0
    errors: list[SyncErrorEntry] = Field(default_factory=list, max_length=MAX_REPORTED_ERRORS)
    next_offset: Optional[int] = None
    message: Optional[str] = None

    def to_response(self) -> dict[str, Any]:
        response = super().to_response()
        response["errors"] = [entry.to_record() for entry in self.errors]
        return response


class ConnectionTestResult(CamelModel):
    """Result of the read-only feed smoke test."""
    success: bool
    sample_count: int = 0
    sample_data: list[dict[str, Any]] = Field(default_factory=list)
    message: Optional[str] = None
    error: Optional[str] = None


class MediaSyncSummary(CamelModel):
    """Result of one media sync pass."""
    success: bool
    total_media_synced: int = 0
    properties_with_media: int = 0
    total_properties: int = 0
    images_created: int = 0
    images_updated: int = 0
    errors: list[SyncErrorEntry] = Field(default_factory=list)
    message: Optional[str] = None

    def to_response(self) -> dict[str, Any]:
        response = super().to_response()
        response["errors"] = [entry.to_record() for entry in self.errors]
        return response
