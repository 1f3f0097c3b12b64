"""Test helper functions."""

import json
from io import BytesIO
from typing import Any, Callable, Dict, Optional
from unittest.mock import Mock

import httpx


class FeedRecorder:
    """Serves listing records from memory the way the Property endpoint pages them."""

    def __init__(self, records: list[dict], status_code: int = 200, error_body: str = ""):
        self.records = records
        self.status_code = status_code
        self.error_body = error_body
        self.requests: list[httpx.Request] = []

    @property
    def params(self) -> list[Dict[str, str]]:
        return [dict(request.url.params) for request in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, text=self.error_body)

        params = request.url.params
        top = int(params.get("$top", "100"))
        skip = int(params.get("$skip", "0"))
        page = self.records[skip:skip + top]
        payload: Dict[str, Any] = {"value": page}
        if skip + top < len(self.records):
            payload["@odata.nextLink"] = f"{request.url}&next={skip + top}"
        return httpx.Response(200, json=payload)


def endless_feed(page_size: int = 10, status: str = "Active") -> Callable[[httpx.Request], httpx.Response]:
    """A feed that always returns ``page_size`` new listings and claims more remain."""
    from tests.utils.factories import create_listing_record

    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        skip = int(request.url.params.get("$skip", "0"))
        page = [
            create_listing_record(listing_id=f"END{skip + index:06d}", status=status)
            for index in range(page_size)
        ]
        return httpx.Response(200, json={"value": page, "@odata.nextLink": f"{request.url}&more=1"})

    handler.calls = calls
    return handler


def media_feed(media_by_listing: Dict[str, list[dict]]) -> Callable[[httpx.Request], httpx.Response]:
    """A feed answering ``$expand=Media`` queries from a listing -> media map."""
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        filter_expr = request.url.params.get("$filter", "")
        value = [
            {"ListingId": listing_id, "Media": media}
            for listing_id, media in media_by_listing.items()
            if f"ListingId eq '{listing_id}'" in filter_expr
        ]
        return httpx.Response(200, json={"value": value})

    handler.calls = calls
    return handler


def make_handler_instance(
    handler_class,
    method: str = "POST",
    path: str = "/",
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    raw_body: Optional[bytes] = None,
):
    """Build a ``BaseHTTPRequestHandler`` instance without a socket.

    ``__init__`` would parse and dispatch a request immediately, so the
    instance is created bare and wired up by hand. ``raw_body`` sends bytes
    verbatim instead of JSON-encoding ``body``.
    """
    if raw_body is None:
        raw_body = json.dumps(body).encode("utf-8") if body is not None else b""

    h = handler_class.__new__(handler_class)
    h.command = method
    h.path = path
    h.request_version = "HTTP/1.1"
    all_headers = {"Content-Length": str(len(raw_body)), "Content-Type": "application/json"}
    all_headers.update(headers or {})
    h.headers = all_headers
    h.rfile = BytesIO(raw_body)
    h.wfile = BytesIO()
    h.send_response = Mock()
    h.send_header = Mock()
    h.end_headers = Mock()
    return h


def read_handler_response(h) -> tuple[int, Dict[str, Any]]:
    """Status code and parsed JSON body written by a handler."""
    status = h.send_response.call_args[0][0]
    h.wfile.seek(0)
    return status, json.loads(h.wfile.read().decode("utf-8"))
