"""Shared plumbing for the MLS serverless handlers (not routed by Vercel)."""

import asyncio
import hmac
import json
from http.server import BaseHTTPRequestHandler
from typing import Any, Optional

from src.utils.config import MLSConfig
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


def run_async(coro):
    """Run a coroutine to completion from a synchronous handler."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_closed():
            raise RuntimeError("event loop is closed")
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def write_json(handler: BaseHTTPRequestHandler, status: int, payload: dict) -> None:
    handler.send_response(status)
    handler.send_header('Content-Type', 'application/json')
    handler.end_headers()
    handler.wfile.write(json.dumps(payload).encode('utf-8'))


def read_json_body(handler: BaseHTTPRequestHandler) -> dict[str, Any]:
    """Parse the request body; an empty body reads as ``{}``.

    Raises ValueError when the body is not a JSON object.
    """
    content_length = int(handler.headers.get('Content-Length', 0) or 0)
    raw_body = handler.rfile.read(content_length).decode('utf-8') if content_length > 0 else ""
    if not raw_body.strip():
        return {}
    try:
        body = json.loads(raw_body)
    except json.JSONDecodeError as e:
        raise ValueError(f"Malformed JSON body: {e.msg}")
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def is_authorized(handler: BaseHTTPRequestHandler, config: Optional[MLSConfig] = None) -> bool:
    """Check the optional bearer trigger token."""
    config = config or MLSConfig.from_env()
    if not config.trigger_token:
        return True

    header = handler.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return hmac.compare_digest(token.strip(), config.trigger_token)


def reject_unauthorized(handler: BaseHTTPRequestHandler) -> None:
    logger.warning("Rejected sync trigger with missing or invalid token")
    write_json(handler, 401, {"success": False, "error": "unauthorized"})


def reject_missing_credentials(handler: BaseHTTPRequestHandler, config: MLSConfig) -> None:
    write_json(handler, 400, {
        "success": False,
        "error": "MLS Grid credentials not configured",
        "details": {
            "hasToken": bool(config.access_token),
            "hasBaseUrl": bool(config.base_url),
        },
    })
