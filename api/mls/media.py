"""MLS media sync trigger endpoint."""

from http.server import BaseHTTPRequestHandler

from api.mls._common import (
    is_authorized,
    reject_missing_credentials,
    reject_unauthorized,
    run_async,
    write_json,
)
from src.services.media_sync import run_media_sync
from src.utils.config import MLSConfig
from src.utils.logging import get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for media sync."""

    def do_POST(self):
        try:
            config = MLSConfig.from_env()
            if not is_authorized(self, config):
                reject_unauthorized(self)
                return
            if not config.has_credentials:
                reject_missing_credentials(self, config)
                return

            summary = run_async(run_media_sync())
            write_json(self, 200 if summary.success else 500, summary.to_response())

        except Exception as e:
            logger.exception("Error running MLS media sync", error=str(e))
            write_json(self, 500, {"success": False, "error": str(e)})
