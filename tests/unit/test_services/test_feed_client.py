"""Tests for the MLS feed client."""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from src.services.feed_client import (
    build_filter,
    build_listing_id_filter,
    format_odata_timestamp,
    is_transient_feed_error,
    quote_odata,
)
from src.utils.config import MLSConfig
from src.utils.errors import ConfigurationError, FeedAPIError, FeedTransportError
from tests.utils.factories import create_listing_feed
from tests.utils.helpers import FeedRecorder


@pytest.mark.unit
def test_build_filter_restricts_to_active_statuses():
    expr = build_filter()

    assert "StandardStatus eq 'Active'" in expr
    assert "StandardStatus eq 'Active Under Contract'" in expr
    assert "StandardStatus eq 'Pending'" in expr
    assert "StandardStatus eq 'Coming Soon'" in expr
    assert "Closed" not in expr
    assert "ModificationTimestamp" not in expr


@pytest.mark.unit
def test_build_filter_adds_watermark_clause():
    since = datetime(2026, 10, 17, 8, 30, 15, 123456, tzinfo=timezone.utc)
    expr = build_filter(since=since)

    assert expr.endswith("ModificationTimestamp gt 2026-10-17T08:30:15.123Z")


@pytest.mark.unit
def test_build_filter_property_types():
    expr = build_filter(property_types=["Residential", "Condominium"])

    assert "(PropertyType eq 'Residential' or PropertyType eq 'Condominium')" in expr


@pytest.mark.unit
def test_format_odata_timestamp_converts_to_utc():
    eastern = timezone(timedelta(hours=-4))
    assert format_odata_timestamp(datetime(2026, 10, 18, 8, 0, tzinfo=eastern)) == "2026-10-18T12:00:00.000Z"


@pytest.mark.unit
def test_format_odata_timestamp_frozen_now(freeze_time_fixture):
    assert format_odata_timestamp(datetime.now(timezone.utc)) == "2026-10-18T12:00:00.000Z"


@pytest.mark.unit
def test_quote_odata_escapes_quotes():
    assert quote_odata("O'Brien") == "'O''Brien'"
    assert build_listing_id_filter(["A1", "B2"]) == "ListingId eq 'A1' or ListingId eq 'B2'"


@pytest.mark.unit
def test_is_transient_feed_error():
    assert is_transient_feed_error(FeedTransportError("timed out"))
    assert is_transient_feed_error(FeedAPIError(429))
    assert is_transient_feed_error(FeedAPIError(503))
    assert not is_transient_feed_error(FeedAPIError(401))
    assert not is_transient_feed_error(FeedAPIError(400))
    assert not is_transient_feed_error(ValueError("nope"))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_page_sends_paging_and_auth(make_feed_client):
    recorder = FeedRecorder(create_listing_feed(5))

    async with make_feed_client(recorder) as client:
        page = await client.fetch_page("StandardStatus eq 'Active'", top=3, skip=0)

    request = recorder.requests[0]
    assert request.url.path == "/v2/Property"
    assert request.headers["Authorization"] == "Bearer test-access-token"
    assert recorder.params[0]["$top"] == "3"
    assert recorder.params[0]["$skip"] == "0"
    assert recorder.params[0]["$filter"] == "StandardStatus eq 'Active'"
    assert len(page.records) == 3
    assert page.has_more is True
    assert page.next_skip == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_page_last_page(make_feed_client):
    recorder = FeedRecorder(create_listing_feed(5))

    async with make_feed_client(recorder) as client:
        page = await client.fetch_page("x", top=10, skip=3)

    assert [r["ListingId"] for r in page.records] == ["MFR000004", "MFR000005"]
    assert page.has_more is False
    assert page.next_skip == 5


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_page_clamps_top(make_feed_client):
    recorder = FeedRecorder([])

    async with make_feed_client(recorder) as client:
        await client.fetch_page("x", top=50000)
        await client.fetch_page("x", top=0)

    assert recorder.params[0]["$top"] == "1000"
    assert recorder.params[1]["$top"] == "1"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retries_transient_error_then_succeeds(make_feed_client):
    """Test a 503 followed by success is retried within the same call."""
    responses = [
        httpx.Response(503, text="busy"),
        httpx.Response(200, json={"value": [{"ListingId": "A1"}]}),
    ]
    calls = []

    def handler(request):
        calls.append(request)
        return responses[len(calls) - 1]

    async with make_feed_client(handler) as client:
        page = await client.fetch_page("x", top=10)

    assert len(calls) == 2
    assert page.records == [{"ListingId": "A1"}]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_retries_exhausted_raises_api_error(make_feed_client):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(502, text="bad gateway")

    async with make_feed_client(handler) as client:
        with pytest.raises(FeedAPIError) as exc_info:
            await client.fetch_page("x", top=10, skip=40)

    assert len(calls) == 3
    assert exc_info.value.status_code == 502
    assert exc_info.value.offset == 40


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unauthorized_is_not_retried(make_feed_client):
    recorder = FeedRecorder([], status_code=401, error_body='{"error": "invalid token"}')

    async with make_feed_client(recorder) as client:
        with pytest.raises(FeedAPIError) as exc_info:
            await client.fetch_page("x", top=10)

    assert len(recorder.requests) == 1
    assert exc_info.value.status_code == 401
    assert "invalid token" in exc_info.value.body
    assert str(exc_info.value) == "API error: 401"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_timeout_raises_transport_error(make_feed_client):
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    async with make_feed_client(handler) as client:
        with pytest.raises(FeedTransportError):
            await client.fetch_page("x", top=10)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_json_raises_api_error(make_feed_client):
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    async with make_feed_client(handler) as client:
        with pytest.raises(FeedAPIError):
            await client.fetch_page("x", top=10)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_credentials(make_feed_client):
    client = make_feed_client(FeedRecorder([]), config=MLSConfig())

    with pytest.raises(ConfigurationError):
        await client.fetch_page("x", top=10)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_media_expands_media(make_feed_client):
    recorder = FeedRecorder([{"ListingId": "A1", "Media": []}])

    async with make_feed_client(recorder) as client:
        listings = await client.fetch_media(["A1", "B2"])

    params = recorder.params[0]
    assert params["$expand"] == "Media"
    assert params["$filter"] == "ListingId eq 'A1' or ListingId eq 'B2'"
    assert "$select" not in params
    assert listings == [{"ListingId": "A1", "Media": []}]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_media_empty_batch_skips_request(make_feed_client):
    recorder = FeedRecorder([])

    async with make_feed_client(recorder) as client:
        assert await client.fetch_media([]) == []

    assert recorder.requests == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_sample_selects_few_fields(make_feed_client):
    recorder = FeedRecorder(create_listing_feed(10))

    async with make_feed_client(recorder) as client:
        sample = await client.fetch_sample(top=5)

    assert len(sample) == 5
    assert recorder.params[0]["$select"] == "ListingId,ListPrice,City,StateOrProvince,StandardStatus"
