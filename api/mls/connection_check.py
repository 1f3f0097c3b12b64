"""MLS feed connection smoke test endpoint. Reads a tiny sample, writes nothing."""

from http.server import BaseHTTPRequestHandler

from api.mls._common import (
    is_authorized,
    reject_missing_credentials,
    reject_unauthorized,
    run_async,
    write_json,
)
from src.services.sync_orchestrator import check_feed_connection
from src.utils.config import MLSConfig
from src.utils.logging import get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for the connection test."""

    def do_POST(self):
        try:
            config = MLSConfig.from_env()
            if not is_authorized(self, config):
                reject_unauthorized(self)
                return
            if not config.has_credentials:
                reject_missing_credentials(self, config)
                return

            result = run_async(check_feed_connection())
            response = result.to_response()
            response["apiUrl"] = config.base_url
            write_json(self, 200 if result.success else 502, response)

        except Exception as e:
            logger.exception("Error testing MLS connection", error=str(e))
            write_json(self, 500, {"success": False, "error": str(e)})

    def do_GET(self):
        """Same as POST; the test is read-only."""
        self.do_POST()
