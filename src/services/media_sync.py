"""Media synchronizer - attach provider photos to synced catalog properties."""

import asyncio
from typing import Any, Optional

from pydantic import ValidationError

from src.models.mls import ExternalMedia
from src.models.sync_api import MediaSyncSummary
from src.models.sync_run import SyncErrorEntry
from src.services.feed_client import MLSFeedClient
from src.services.field_mapper import map_media, select_photos
from src.services.reconciler import ReconcileAction, Reconciler
from src.services.supabase_client import CatalogStore
from src.utils.config import MLSConfig
from src.utils.errors import FeedAPIError, FeedError, SupabaseError
from src.utils.logging import correlation_context, get_structured_logger, log_timing

logger = get_structured_logger(__name__)


def chunked(items: list[str], size: int) -> list[list[str]]:
    size = max(1, size)
    return [items[i:i + size] for i in range(0, len(items), size)]


class MediaSynchronizer:
    """
    Pull photos for every provider-sourced property and reconcile them by
    media key. Creates and updates image rows; never deletes.

    Feed errors are isolated per batch of listings and write errors per image,
    so one failure never stops the pass.
    """

    def __init__(
        self,
        store: Optional[CatalogStore] = None,
        feed_client: Optional[MLSFeedClient] = None,
        reconciler: Optional[Reconciler] = None,
        config: Optional[MLSConfig] = None,
    ):
        self.config = config or (feed_client.config if feed_client else MLSConfig.from_env())
        self.store = store or CatalogStore()
        self.feed_client = feed_client or MLSFeedClient(self.config)
        self.reconciler = reconciler or Reconciler(self.store)

    async def run(self) -> MediaSyncSummary:
        with correlation_context(prefix="media"):
            try:
                properties = await self.store.list_mls_properties()
            except SupabaseError as e:
                logger.error("Failed to load MLS properties for media sync", error=str(e))
                return MediaSyncSummary(success=False, message=str(e))

            if not properties:
                return MediaSyncSummary(success=True, message="No MLS properties to sync media for")

            with log_timing("mls_media_sync", logger=logger, total_properties=len(properties)):
                return await self._sync(properties)

    async def _sync(self, properties: list[dict]) -> MediaSyncSummary:
        property_ids = {row["listing_id"]: row["id"] for row in properties if row.get("listing_id")}
        summary = MediaSyncSummary(success=True, total_properties=len(properties))
        batches = chunked(list(property_ids), self.config.media_batch_size)

        logger.info("Media sync started", total_properties=len(properties), batches=len(batches))

        async with self.feed_client as feed:
            for index, batch in enumerate(batches, start=1):
                try:
                    listings = await feed.fetch_media(batch)
                except FeedError as e:
                    detail = f"Batch {index}: {e}"
                    summary.errors.append(SyncErrorEntry(
                        listing_id=None,
                        error=detail,
                        status_code=e.status_code if isinstance(e, FeedAPIError) else None,
                    ))
                    logger.error("Media batch failed", batch=index, error=str(e))
                    continue

                for listing in listings:
                    property_id = property_ids.get(listing.get("ListingId"))
                    if not property_id:
                        continue
                    await self._sync_listing_media(property_id, listing, summary)

                if index < len(batches) and self.config.media_batch_delay_seconds > 0:
                    await asyncio.sleep(self.config.media_batch_delay_seconds)

        summary.total_media_synced = summary.images_created + summary.images_updated
        summary.message = (
            f"Synced {summary.total_media_synced} images for "
            f"{summary.properties_with_media} properties"
        )
        logger.info(
            "Media sync finished",
            total_media_synced=summary.total_media_synced,
            properties_with_media=summary.properties_with_media,
            images_created=summary.images_created,
            images_updated=summary.images_updated,
            error_count=len(summary.errors)
        )
        return summary

    async def _sync_listing_media(self, property_id: str, listing: dict[str, Any], summary: MediaSyncSummary) -> None:
        listing_id = listing.get("ListingId")
        photos = select_photos(listing.get("Media"))
        if not photos:
            logger.debug("No photos for listing", listing_id=listing_id)
            return

        synced = 0
        for position, record in enumerate(photos):
            media_key = record.get("MediaKey")
            try:
                fields = map_media(ExternalMedia.from_record(record), position, property_id=property_id)
            except ValidationError as e:
                summary.errors.append(SyncErrorEntry(
                    listing_id=listing_id,
                    error=f"Invalid media {media_key}: {e.errors()[0]['msg']}",
                ))
                continue

            outcome = await self.reconciler.upsert_image(fields)
            if outcome.action is ReconcileAction.CREATED:
                summary.images_created += 1
                synced += 1
            elif outcome.action is ReconcileAction.UPDATED:
                summary.images_updated += 1
                synced += 1
            else:
                summary.errors.append(SyncErrorEntry(
                    listing_id=listing_id,
                    error=f"Media {outcome.natural_key}: {outcome.error}",
                ))

        if synced:
            summary.properties_with_media += 1
            logger.info("Synced listing images", listing_id=listing_id, images=synced)


async def run_media_sync(synchronizer: Optional[MediaSynchronizer] = None) -> MediaSyncSummary:
    """Entry point used by the media sync endpoint."""
    synchronizer = synchronizer or MediaSynchronizer()
    return await synchronizer.run()
