"""Shared pytest fixtures and configuration."""

import os
import pytest
import httpx
from unittest.mock import MagicMock
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LOG_FORMAT", "text")

from src.services.feed_client import MLSFeedClient
from src.utils.config import MLSConfig
from tests.utils.factories import create_listing_record, create_media_record
from tests.utils.fake_store import FakeCatalogStore


@pytest.fixture
def mls_config():
    """Feed config pointed at a fake host, with retries that never sleep."""
    return MLSConfig(
        base_url="https://mls.test/v2",
        access_token="test-access-token",
        page_size=200,
        max_page_size=1000,
        request_timeout_seconds=5.0,
        max_retries=3,
        retry_max_wait_seconds=0,
        media_batch_size=20,
        media_batch_delay_seconds=0,
    )


@pytest.fixture
def fake_store():
    """In-memory catalog store."""
    return FakeCatalogStore()


@pytest.fixture
def make_feed_client(mls_config):
    """Factory for a real feed client served by an in-process handler."""
    def _make(handler, config=None):
        return MLSFeedClient(config or mls_config, transport=httpx.MockTransport(handler))
    return _make


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client whose query builders chain back to themselves."""
    client = MagicMock()
    query = MagicMock()
    for method in ("select", "insert", "update", "eq", "is_", "neq", "order", "limit", "range"):
        getattr(query, method).return_value = query
    query.not_ = query
    query.execute.return_value = MagicMock(data=[])
    client.table.return_value = query
    client.query = query
    return client


@pytest.fixture
def sample_listing_record():
    """A well-formed active listing."""
    return create_listing_record(
        listing_id="MFR123456",
        ListPrice=525000,
        UnparsedAddress="123 Main St",
        City="Tampa",
        StateOrProvince="FL",
        PostalCode="33602",
        PropertyType="Single Family Residence",
        StandardStatus="Active",
    )


@pytest.fixture
def sample_media_records():
    """Mixed media for one listing, deliberately out of order."""
    return [
        create_media_record(media_key="M-3", order=3),
        create_media_record(media_key="M-1", order=1),
        create_media_record(media_key="DOC", order=0, category="Document"),
        create_media_record(media_key="M-0", order=0, category="Photo"),
    ]


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2026-10-18 12:00:00") as frozen_time:
        yield frozen_time
