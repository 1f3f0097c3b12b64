"""Sync orchestrator - drive one listing sync run end-to-end.

A run is ``running`` from the moment its audit row is written until it closes
as ``completed``, ``completed_with_errors`` or ``failed``. The audit row is
written exactly twice: once on entry and once on close.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import ValidationError

from src.models.mls import ExternalListing
from src.models.sync_api import MAX_REPORTED_ERRORS, ConnectionTestResult, SyncRequest, SyncSummary
from src.models.sync_run import SyncCounters, SyncErrorEntry, SyncRun, SyncStatus, SyncType
from src.services.feed_client import ACTIVE_STATUSES, MLSFeedClient, build_filter
from src.services.field_mapper import is_test_listing, map_listing, passes_filters
from src.services.reconciler import ReconcileAction, Reconciler
from src.services.supabase_client import CatalogStore
from src.services.watermark import SyncLogWatermarkProvider, WatermarkProvider, parse_timestamp
from src.utils.config import MLSConfig
from src.utils.errors import ConfigurationError, FeedAPIError, FeedError, SyncInProgressError, SyncResumeError
from src.utils.logging import correlation_context, get_structured_logger, log_timing, timed

logger = get_structured_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def determine_status(counters: SyncCounters, errors: list[SyncErrorEntry], fatal: bool) -> SyncStatus:
    """Terminal status for a run that has stopped."""
    if fatal:
        return SyncStatus.FAILED
    if not errors:
        return SyncStatus.COMPLETED
    if counters.records_succeeded > 0:
        return SyncStatus.COMPLETED_WITH_ERRORS
    return SyncStatus.FAILED


def natural_key(record: Any) -> Optional[str]:
    """``ListingId`` of a raw feed record as a string, if it has one."""
    value = record.get("ListingId") if isinstance(record, dict) else None
    return str(value) if value is not None else None


class SyncOrchestrator:
    """Runs property syncs from the MLS feed into the catalog."""

    def __init__(
        self,
        store: Optional[CatalogStore] = None,
        feed_client: Optional[MLSFeedClient] = None,
        watermark_provider: Optional[WatermarkProvider] = None,
        reconciler: Optional[Reconciler] = None,
        config: Optional[MLSConfig] = None,
    ):
        self.config = config or (feed_client.config if feed_client else MLSConfig.from_env())
        self.store = store or CatalogStore()
        self.feed_client = feed_client or MLSFeedClient(self.config)
        self.watermark_provider = watermark_provider or SyncLogWatermarkProvider(self.store)
        self.reconciler = reconciler or Reconciler(self.store)

    async def run(self, request: SyncRequest) -> SyncSummary:
        """
        Execute one sync run.

        Raises ``SyncInProgressError`` if another run holds the lock; every other
        failure is reported through the returned summary and the audit row.
        """
        with correlation_context(prefix="sync") as correlation_id:
            sync_run = await self._open_run(request.sync_type)
            logger.info(
                "Sync run started",
                sync_log_id=sync_run.id,
                sync_type=request.sync_type.value,
                limit=request.limit,
                start_offset=request.start_offset,
                correlation_id=correlation_id
            )
            with log_timing("mls_sync_run", logger=logger, sync_log_id=sync_run.id):
                return await self._execute(sync_run, request)

    async def _open_run(self, sync_type: SyncType) -> SyncRun:
        """Take the run lock by writing the ``running`` audit row."""
        now = utc_now()
        stale_before = now - timedelta(minutes=self.config.stale_run_minutes)

        for row in await self.store.get_running_sync_runs():
            started_at = parse_timestamp(row.get("started_at"))
            if started_at is not None and started_at < stale_before:
                logger.warning(
                    "Closing abandoned sync run",
                    sync_log_id=row.get("id"),
                    started_at=row.get("started_at")
                )
                await self.store.update_sync_run(row["id"], {
                    "status": SyncStatus.FAILED.value,
                    "completed_at": now.isoformat(),
                    "error_message": f"Abandoned: still running after {self.config.stale_run_minutes} minutes",
                })
                continue
            raise SyncInProgressError(row.get("id"))

        row = await self.store.create_sync_run({
            "sync_type": sync_type.value,
            "status": SyncStatus.RUNNING.value,
            "started_at": now.isoformat(),
        })
        return SyncRun.from_row(row)

    async def _execute(self, sync_run: SyncRun, request: SyncRequest) -> SyncSummary:
        counters = SyncCounters()
        errors: list[SyncErrorEntry] = []
        offset = request.start_offset
        has_more = True
        fatal_message: Optional[str] = None
        since: Optional[datetime] = None

        try:
            if request.sync_type is SyncType.INCREMENTAL:
                if request.start_offset:
                    since = await self.watermark_provider.get_resume_watermark(request.start_offset)
                    logger.info(
                        "Resuming incremental sync",
                        start_offset=request.start_offset,
                        watermark=since.isoformat() if since else None
                    )
                else:
                    since = await self.watermark_provider.get_watermark()
                    if since is None:
                        logger.info("No completed sync found, incremental run pulls everything")
                    else:
                        logger.info("Incremental sync from watermark", watermark=since.isoformat())

            filter_expr = build_filter(since=since, property_types=request.property_types)
            fetched = 0

            async with self.feed_client as feed:
                while has_more and counters.records_processed < request.limit:
                    remaining = request.limit - counters.records_processed
                    page = await feed.fetch_page(
                        filter_expr,
                        top=min(self.config.page_size, remaining),
                        skip=offset,
                    )
                    fetched += len(page.records)

                    consumed = 0
                    for record in page.records:
                        if counters.records_processed >= request.limit:
                            break
                        consumed += 1
                        await self._process_record(record, request, counters, errors)

                    offset += consumed
                    cut_short = consumed < len(page.records)
                    has_more = cut_short or (page.has_more and bool(page.records))

                    if fetched >= self.config.max_records_fetched:
                        logger.warning("Safety limit reached", fetched=fetched, limit=self.config.max_records_fetched)
                        break

        except SyncResumeError as e:
            fatal_message = str(e)
            has_more = False
            logger.warning("Cannot resume incremental sync", sync_log_id=sync_run.id, start_offset=e.offset)
        except FeedError as e:
            fatal_message = self._describe_fatal(e)
            errors.append(SyncErrorEntry(
                listing_id=None,
                error=fatal_message,
                status_code=e.status_code if isinstance(e, FeedAPIError) else None,
                offset=offset,
            ))
            logger.error("Sync run aborted by feed error", sync_log_id=sync_run.id, error=fatal_message, offset=offset)
        except Exception as e:
            fatal_message = f"Sync failed: {e}"
            logger.exception("Sync run aborted", sync_log_id=sync_run.id, error=str(e))

        status = determine_status(counters, errors, fatal=fatal_message is not None)
        next_offset = offset if has_more else None
        await self._close_run(sync_run, status, counters, errors, fatal_message, offset, next_offset, since)

        logger.info(
            "Sync run finished",
            sync_log_id=sync_run.id,
            status=status.value,
            records_processed=counters.records_processed,
            records_created=counters.records_created,
            records_updated=counters.records_updated,
            records_skipped=counters.records_skipped,
            error_count=len(errors)
        )

        return SyncSummary(
            success=status is not SyncStatus.FAILED,
            sync_log_id=sync_run.id,
            status=status,
            records_processed=counters.records_processed,
            records_created=counters.records_created,
            records_updated=counters.records_updated,
            records_skipped=counters.records_skipped,
            error_count=len(errors),
            errors=errors[:MAX_REPORTED_ERRORS],
            next_offset=next_offset,
            message=fatal_message or self._describe_result(counters, request, next_offset),
        )

    async def _process_record(
        self,
        record: Any,
        request: SyncRequest,
        counters: SyncCounters,
        errors: list[SyncErrorEntry],
    ) -> None:
        """Validate, filter, map and reconcile one feed record. Never raises."""
        listing_id = natural_key(record)
        processed_before = counters.records_processed
        try:
            await self._handle_record(record, listing_id, request, counters, errors)
        except Exception as e:
            logger.exception("Unexpected error processing record", listing_id=listing_id, error=str(e))
            if counters.records_processed == processed_before:
                counters.records_processed += 1
            errors.append(SyncErrorEntry(listing_id=listing_id, error=f"Record failed: {e}"))

    async def _handle_record(
        self,
        record: Any,
        listing_id: Optional[str],
        request: SyncRequest,
        counters: SyncCounters,
        errors: list[SyncErrorEntry],
    ) -> None:
        try:
            listing = ExternalListing.from_record(record)
        except ValidationError as e:
            counters.records_processed += 1
            errors.append(SyncErrorEntry(
                listing_id=listing_id,
                error=f"Invalid listing record: {e.errors()[0]['msg']}",
            ))
            return

        if listing.standard_status not in ACTIVE_STATUSES:
            counters.records_skipped += 1
            logger.debug("Skipping inactive listing", listing_id=listing.listing_id, mls_status=listing.standard_status)
            return
        if is_test_listing(listing):
            counters.records_skipped += 1
            logger.debug("Skipping test listing", listing_id=listing.listing_id)
            return
        if not passes_filters(listing, request.min_price, request.max_price, request.county):
            counters.records_skipped += 1
            return

        counters.records_processed += 1
        try:
            fields = map_listing(listing, default_source_system=self.config.default_source_system)
        except (ValidationError, ValueError, TypeError) as e:
            errors.append(SyncErrorEntry(listing_id=listing.listing_id, error=f"Mapping failed: {e}"))
            return

        outcome = await self.reconciler.upsert_property(fields)
        if outcome.action is ReconcileAction.CREATED:
            counters.records_created += 1
        elif outcome.action is ReconcileAction.UPDATED:
            counters.records_updated += 1
        else:
            errors.append(SyncErrorEntry(listing_id=outcome.natural_key, error=outcome.error or "Unknown error"))

    async def _close_run(
        self,
        sync_run: SyncRun,
        status: SyncStatus,
        counters: SyncCounters,
        errors: list[SyncErrorEntry],
        fatal_message: Optional[str],
        offset: int,
        next_offset: Optional[int],
        since: Optional[datetime],
    ) -> None:
        """Persist the terminal state. The only write after the opening row."""
        await self.store.update_sync_run(sync_run.id, {
            "status": status.value,
            "completed_at": utc_now().isoformat(),
            "records_processed": counters.records_processed,
            "records_created": counters.records_created,
            "records_updated": counters.records_updated,
            "records_skipped": counters.records_skipped,
            "errors": [entry.to_record() for entry in errors] or None,
            "error_message": fatal_message,
            "last_offset": offset,
            "next_offset": next_offset,
            "watermark": since.isoformat() if since else None,
        })

    @staticmethod
    def _describe_fatal(error: FeedError) -> str:
        if isinstance(error, FeedAPIError):
            if error.body:
                return f"API error: {error.status_code} - {error.body}"
            return f"API error: {error.status_code}"
        return str(error)

    @staticmethod
    def _describe_result(counters: SyncCounters, request: SyncRequest, next_offset: Optional[int]) -> str:
        if counters.records_processed < request.limit and next_offset is not None:
            return (
                f"Found {counters.records_processed} matching properties. "
                f"Run again with startOffset={next_offset} to continue."
            )
        return f"Successfully synced {counters.records_succeeded} of {counters.records_processed} properties."


async def run_sync(request: SyncRequest, orchestrator: Optional[SyncOrchestrator] = None) -> SyncSummary:
    """Entry point used by the sync trigger endpoint."""
    orchestrator = orchestrator or SyncOrchestrator()
    return await orchestrator.run(request)


@timed("mls_connection_check", logger=logger)
async def check_feed_connection(feed_client: Optional[MLSFeedClient] = None, sample_size: int = 5) -> ConnectionTestResult:
    """Read-only smoke test: fetch a tiny sample, persist nothing."""
    feed_client = feed_client or MLSFeedClient()
    try:
        async with feed_client as feed:
            sample = await feed.fetch_sample(top=sample_size)
    except ConfigurationError as e:
        return ConnectionTestResult(success=False, error=str(e))
    except FeedError as e:
        detail = SyncOrchestrator._describe_fatal(e)
        logger.error("MLS connection test failed", error=detail)
        return ConnectionTestResult(success=False, error=detail)

    logger.info("MLS connection test succeeded", sample_count=len(sample))
    return ConnectionTestResult(
        success=True,
        sample_count=len(sample),
        sample_data=sample,
        message="MLS Grid connection successful",
    )
