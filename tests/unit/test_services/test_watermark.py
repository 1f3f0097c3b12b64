"""Tests for incremental sync watermarks."""

from datetime import datetime, timezone

import pytest

from src.services.watermark import FixedWatermarkProvider, SyncLogWatermarkProvider, parse_timestamp
from src.utils.errors import SyncResumeError


@pytest.mark.unit
def test_parse_timestamp():
    assert parse_timestamp("2026-10-17T08:00:00+00:00") == datetime(2026, 10, 17, 8, tzinfo=timezone.utc)
    assert parse_timestamp("2026-10-17T08:00:00Z") == datetime(2026, 10, 17, 8, tzinfo=timezone.utc)
    assert parse_timestamp("2026-10-17T08:00:00").tzinfo is timezone.utc
    assert parse_timestamp(None) is None
    assert parse_timestamp("yesterday") is None


@pytest.mark.unit
@pytest.mark.parametrize("value, microsecond", [
    ("2026-10-17T08:00:00.1+00:00", 100000),
    ("2026-10-17T08:00:00.12345+00:00", 123450),
    ("2026-10-17T08:00:00.123456+00:00", 123456),
])
def test_parse_timestamp_any_fraction_precision(value, microsecond):
    """Postgres drops trailing zeros from fractional seconds."""
    assert parse_timestamp(value) == datetime(2026, 10, 17, 8, 0, 0, microsecond, tzinfo=timezone.utc)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_watermark_from_latest_completed_run(fake_store):
    fake_store.add_sync_run(sync_type="full", status="completed", completed_at="2026-10-16T10:00:00+00:00")
    fake_store.add_sync_run(sync_type="incremental", status="completed", completed_at="2026-10-17T10:00:00+00:00")
    fake_store.add_sync_run(sync_type="full", status="completed_with_errors", completed_at="2026-10-18T10:00:00+00:00")
    fake_store.add_sync_run(sync_type="full", status="failed", completed_at="2026-10-18T11:00:00+00:00")

    watermark = await SyncLogWatermarkProvider(fake_store).get_watermark()

    assert watermark == datetime(2026, 10, 17, 10, tzinfo=timezone.utc)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_truncated_run_is_not_a_watermark(fake_store):
    fake_store.add_sync_run(sync_type="full", status="completed", completed_at="2026-10-16T10:00:00+00:00")
    fake_store.add_sync_run(
        sync_type="incremental",
        status="completed",
        completed_at="2026-10-17T10:00:00+00:00",
        next_offset=100,
    )

    watermark = await SyncLogWatermarkProvider(fake_store).get_watermark()

    assert watermark == datetime(2026, 10, 16, 10, tzinfo=timezone.utc)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_no_completed_run_means_no_watermark(fake_store):
    fake_store.add_sync_run(sync_type="full", status="failed", completed_at="2026-10-18T11:00:00+00:00")

    assert await SyncLogWatermarkProvider(fake_store).get_watermark() is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resume_watermark_from_stopped_run(fake_store):
    fake_store.add_sync_run(
        sync_type="incremental",
        status="completed",
        started_at="2026-10-17T09:00:00+00:00",
        next_offset=200,
        watermark="2026-10-16T10:00:00+00:00",
    )
    fake_store.add_sync_run(sync_type="full", status="completed", started_at="2026-10-17T11:00:00+00:00", next_offset=200)

    provider = SyncLogWatermarkProvider(fake_store)

    assert await provider.get_resume_watermark(200) == datetime(2026, 10, 16, 10, tzinfo=timezone.utc)
    with pytest.raises(SyncResumeError):
        await provider.get_resume_watermark(300)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_resume_of_unbounded_run_has_no_watermark(fake_store):
    fake_store.add_sync_run(sync_type="incremental", status="failed", next_offset=50, watermark=None)

    assert await SyncLogWatermarkProvider(fake_store).get_resume_watermark(50) is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fixed_watermark():
    moment = datetime(2026, 1, 1, tzinfo=timezone.utc)
    provider = FixedWatermarkProvider(moment)

    assert await provider.get_watermark() == moment
    assert await provider.get_resume_watermark(100) == moment
