"""Reconciler - natural-key create-or-update against the catalog."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.models.property import CatalogPropertyFields, PropertyImageFields
from src.services.supabase_client import CatalogStore, PROPERTIES_TABLE, PROPERTY_IMAGES_TABLE
from src.utils.errors import DuplicateNaturalKeyError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class ReconcileAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    ERROR = "error"


@dataclass
class ReconcileOutcome:
    """Result of reconciling one record."""
    action: ReconcileAction
    natural_key: Optional[str]
    row_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.action is not ReconcileAction.ERROR


class Reconciler:
    """
    Decide create-vs-update for each mapped record using its natural key.

    Lookups go through the provider identifier only, never the local row ID.
    Every failure for a record is returned as an ``ERROR`` outcome so one bad
    record cannot abort the batch.
    """

    def __init__(self, store: Optional[CatalogStore] = None):
        self.store = store or CatalogStore()

    async def upsert_property(self, fields: CatalogPropertyFields) -> ReconcileOutcome:
        """Create or update the catalog row for ``fields.listing_id``."""
        listing_id = fields.listing_id
        try:
            matches = await self.store.find_properties_by_listing_id(listing_id)

            if not matches:
                row = await self.store.insert_property(fields.to_insert_record())
                return ReconcileOutcome(ReconcileAction.CREATED, listing_id, row_id=row.get("id"))

            if len(matches) > 1:
                raise DuplicateNaturalKeyError(PROPERTIES_TABLE, "listing_id", listing_id, len(matches))

            row = await self.store.update_property(matches[0]["id"], fields.to_record())
            return ReconcileOutcome(ReconcileAction.UPDATED, listing_id, row_id=row.get("id"))

        except Exception as e:
            logger.warning(
                "Failed to reconcile property",
                listing_id=listing_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return ReconcileOutcome(ReconcileAction.ERROR, listing_id, error=str(e))

    async def upsert_image(self, fields: PropertyImageFields) -> ReconcileOutcome:
        """Create or update the image row for ``fields.media_key``."""
        media_key = fields.media_key
        try:
            matches = await self.store.find_images_by_media_key(media_key)

            if not matches:
                row = await self.store.insert_image(fields.to_record())
                return ReconcileOutcome(ReconcileAction.CREATED, media_key, row_id=row.get("id"))

            if len(matches) > 1:
                raise DuplicateNaturalKeyError(PROPERTY_IMAGES_TABLE, "media_key", media_key, len(matches))

            row = await self.store.update_image(matches[0]["id"], fields.to_record())
            return ReconcileOutcome(ReconcileAction.UPDATED, media_key, row_id=row.get("id"))

        except Exception as e:
            logger.warning(
                "Failed to reconcile property image",
                media_key=media_key,
                property_id=fields.property_id,
                error=str(e),
                error_type=type(e).__name__
            )
            return ReconcileOutcome(ReconcileAction.ERROR, media_key, error=str(e))
