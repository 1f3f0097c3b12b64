"""Sync run audit models (``mls_sync_log`` table)."""

from enum import Enum
from typing import Any, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class SyncType(str, Enum):
    """Sync strategy."""
    FULL = "full"
    INCREMENTAL = "incremental"


class SyncStatus(str, Enum):
    """Run lifecycle: RUNNING, then exactly one terminal status."""
    RUNNING = "running"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


class SyncErrorEntry(BaseModel):
    """A per-record failure, keyed by the record's natural key."""
    model_config = ConfigDict(populate_by_name=True)

    listing_id: Optional[str] = Field(None, alias="listingId", description="Natural key of the failed record")
    error: str = Field(..., validation_alias=AliasChoices("error", "message"), description="Failure message")
    status_code: Optional[int] = Field(None, alias="statusCode", description="Provider status code for fatal feed errors")
    offset: Optional[int] = Field(None, description="Feed offset for fatal feed errors")

    @field_validator("listing_id", mode="before")
    @classmethod
    def stringify_listing_id(cls, value: Any) -> Any:
        """Provider keys are not always strings."""
        if value is None or isinstance(value, str):
            return value
        return str(value)

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class SyncCounters(BaseModel):
    """Aggregate counters accumulated during a run."""
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_skipped: int = 0

    @property
    def records_succeeded(self) -> int:
        return self.records_created + self.records_updated


class SyncRun(BaseModel):
    """One row of the sync audit trail."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: Optional[str] = Field(None, description="Run ID assigned by the database")
    sync_type: SyncType = Field(..., description="full or incremental")
    status: SyncStatus = Field(default=SyncStatus.RUNNING)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    records_processed: int = 0
    records_created: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    errors: list[SyncErrorEntry] = Field(default_factory=list)
    error_message: Optional[str] = Field(None, description="Fatal error detail, including provider status and body")
    last_offset: Optional[int] = Field(None, description="Feed offset reached when the run closed")
    next_offset: Optional[int] = Field(None, description="Offset to resume from, null when the feed was exhausted")
    watermark: Optional[str] = Field(None, description="ModificationTimestamp lower bound the run filtered on")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SyncRun":
        row = dict(row)
        row["errors"] = row.get("errors") or []
        for key in ("records_processed", "records_created", "records_updated", "records_skipped"):
            row[key] = row.get(key) or 0
        return cls.model_validate(row)

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
