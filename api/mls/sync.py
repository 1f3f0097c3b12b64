"""MLS property sync trigger endpoint (admin panel or Vercel cron)."""

from http.server import BaseHTTPRequestHandler

from pydantic import ValidationError

from api.mls._common import (
    is_authorized,
    read_json_body,
    reject_missing_credentials,
    reject_unauthorized,
    run_async,
    write_json,
)
from src.models.sync_api import SyncRequest
from src.models.sync_run import SyncRun
from src.services.supabase_client import CatalogStore
from src.services.sync_orchestrator import run_sync
from src.utils.config import MLSConfig
from src.utils.errors import SyncInProgressError
from src.utils.logging import get_structured_logger, setup_logging

setup_logging()
logger = get_structured_logger(__name__)

HISTORY_LIMIT = 10


class handler(BaseHTTPRequestHandler):
    """Vercel serverless function handler for MLS property sync."""

    def do_POST(self):
        """Start a sync run: ``{syncType|mode, limit, ...}``."""
        try:
            config = MLSConfig.from_env()
            if not is_authorized(self, config):
                reject_unauthorized(self)
                return

            try:
                body = read_json_body(self)
            except ValueError as e:
                logger.warning("Rejected sync request body", error=str(e))
                write_json(self, 400, {"success": False, "error": "invalid sync request", "details": str(e)})
                return

            try:
                request = SyncRequest.model_validate(body)
            except ValidationError as e:
                write_json(self, 400, {
                    "success": False,
                    "error": "invalid sync request",
                    "details": e.errors(include_url=False, include_context=False),
                })
                return

            if not config.has_credentials:
                reject_missing_credentials(self, config)
                return

            try:
                summary = run_async(run_sync(request))
            except SyncInProgressError as e:
                write_json(self, 409, {
                    "success": False,
                    "error": "sync already in progress",
                    "runningSyncLogId": e.running_sync_id,
                })
                return

            status = 200 if summary.success else 502
            write_json(self, status, summary.to_response())

        except Exception as e:
            logger.exception("Error running MLS sync", error=str(e))
            write_json(self, 500, {"success": False, "error": str(e)})

    def do_GET(self):
        """Recent sync runs, newest first."""
        try:
            if not is_authorized(self):
                reject_unauthorized(self)
                return

            rows = run_async(CatalogStore().get_recent_sync_runs(HISTORY_LIMIT))
            runs = [SyncRun.from_row(row).to_response() for row in rows]
            write_json(self, 200, {"success": True, "syncRuns": runs})
        except Exception as e:
            logger.exception("Error loading sync history", error=str(e))
            write_json(self, 500, {"success": False, "error": str(e)})
