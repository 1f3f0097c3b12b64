"""MLS Grid feed client - paginated OData queries against the Property resource."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.utils.config import MLSConfig
from src.utils.errors import FeedAPIError, FeedError, FeedTransportError
from src.utils.logging import get_structured_logger, log_timing, truncate_body

logger = get_structured_logger(__name__)

PROPERTY_RESOURCE = "/Property"

# Closed/sold listings are never pulled
ACTIVE_STATUSES = ("Active", "Active Under Contract", "Pending", "Coming Soon")

SAMPLE_FIELDS = ("ListingId", "ListPrice", "City", "StateOrProvince", "StandardStatus")


@dataclass
class FeedPage:
    """One page of feed records."""
    records: list[dict[str, Any]]
    has_more: bool
    next_skip: int


def quote_odata(value: str) -> str:
    """Quote a string literal for an OData filter."""
    return "'" + str(value).replace("'", "''") + "'"


def format_odata_timestamp(value: datetime) -> str:
    """UTC ISO-8601 with millisecond precision, as the feed expects."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def build_filter(
    since: Optional[datetime] = None,
    property_types: Optional[Iterable[str]] = None,
) -> str:
    """
    Build the ``$filter`` expression for a listing pull.

    Always restricts to the active status allow-list. ``since`` adds the
    incremental "modified after" clause.
    """
    status_clause = " or ".join(f"StandardStatus eq {quote_odata(s)}" for s in ACTIVE_STATUSES)
    parts = [f"({status_clause})"]

    types = [t for t in (property_types or []) if t]
    if types:
        type_clause = " or ".join(f"PropertyType eq {quote_odata(t)}" for t in types)
        parts.append(f"({type_clause})")

    if since is not None:
        parts.append(f"ModificationTimestamp gt {format_odata_timestamp(since)}")

    return " and ".join(parts)


def build_listing_id_filter(listing_ids: Iterable[str]) -> str:
    return " or ".join(f"ListingId eq {quote_odata(listing_id)}" for listing_id in listing_ids)


def is_transient_feed_error(error: BaseException) -> bool:
    """Timeouts, connection failures, throttling and provider 5xx are worth retrying."""
    if isinstance(error, FeedTransportError):
        return True
    if isinstance(error, FeedAPIError):
        return error.status_code == 429 or error.status_code >= 500
    return False


class MLSFeedClient:
    """
    Read-only client for the provider's Property query API.

    Knows request construction and response parsing only. Any non-success
    response surfaces as ``FeedAPIError`` and any timeout or connection failure
    as ``FeedTransportError``, after bounded retries for transient failures.
    """

    def __init__(
        self,
        config: Optional[MLSConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or MLSConfig.from_env()
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "MLSFeedClient":
        self._get_http()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self.config.require_credentials()
            self._http = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={
                    "Authorization": f"Bearer {self.config.access_token}",
                    "Accept": "application/json",
                },
                timeout=self.config.request_timeout_seconds,
                transport=self._transport,
            )
        return self._http

    def clamp_top(self, top: int) -> int:
        """Clamp a requested page size to ``[1, provider max]``."""
        return max(1, min(int(top), self.config.max_page_size))

    async def fetch_page(self, filter_expr: str, top: int, skip: int = 0) -> FeedPage:
        """Fetch one page of listings matching ``filter_expr``."""
        top = self.clamp_top(top)
        params = {"$top": str(top), "$skip": str(skip), "$filter": filter_expr}

        with log_timing("mls_fetch_page", logger=logger, top=top, skip=skip):
            payload = await self._get(params)

        records = payload.get("value") or []
        has_more = bool(payload.get("@odata.nextLink")) or len(records) >= top

        logger.info(
            "Fetched MLS page",
            skip=skip,
            top=top,
            records=len(records),
            has_more=has_more
        )
        return FeedPage(records=records, has_more=has_more, next_skip=skip + len(records))

    async def fetch_media(self, listing_ids: list[str]) -> list[dict[str, Any]]:
        """Fetch listings with their ``Media`` expanded, one request per batch of IDs."""
        if not listing_ids:
            return []

        # $select would drop the expanded collection
        params = {
            "$filter": build_listing_id_filter(listing_ids),
            "$expand": "Media",
            "$top": str(self.clamp_top(len(listing_ids))),
        }
        with log_timing("mls_fetch_media", logger=logger, listings=len(listing_ids)):
            payload = await self._get(params)
        return payload.get("value") or []

    async def fetch_sample(self, top: int = 5) -> list[dict[str, Any]]:
        """Tiny ``$select``-restricted page used as a connection smoke test."""
        params = {"$top": str(self.clamp_top(top)), "$select": ",".join(SAMPLE_FIELDS)}
        payload = await self._get(params)
        return payload.get("value") or []

    async def _get(self, params: dict[str, str]) -> dict[str, Any]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.config.max_retries)),
            wait=wait_exponential(multiplier=0.5, max=self.config.retry_max_wait_seconds),
            retry=retry_if_exception(is_transient_feed_error),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._request(params)
        raise FeedError("MLS feed request was not attempted")

    async def _request(self, params: dict[str, str]) -> dict[str, Any]:
        http = self._get_http()
        skip = int(params["$skip"]) if "$skip" in params else None

        try:
            response = await http.get(PROPERTY_RESOURCE, params=params)
        except httpx.TimeoutException as e:
            raise FeedTransportError(f"MLS feed request timed out: {e}") from e
        except httpx.RequestError as e:
            raise FeedTransportError(f"MLS feed unreachable: {e}") from e

        if not response.is_success:
            body = truncate_body(response.text)
            logger.error(
                "MLS feed returned an error",
                status_code=response.status_code,
                skip=skip,
                body=body
            )
            raise FeedAPIError(response.status_code, body, offset=skip)

        try:
            payload = response.json()
        except ValueError as e:
            raise FeedAPIError(response.status_code, f"Invalid JSON from MLS feed: {e}", offset=skip) from e

        if not isinstance(payload, dict):
            raise FeedAPIError(response.status_code, "Unexpected MLS feed payload", offset=skip)
        return payload

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retrying MLS feed request",
            attempt=retry_state.attempt_number,
            max_attempts=self.config.max_retries,
            error=str(error)
        )
