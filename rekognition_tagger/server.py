"""
HTTP server for health checks, metrics and the admin label preview.
"""

import asyncio
import json
import time
from datetime import datetime
from typing import Optional
from aiohttp import web
from .admin import UPDATE_LABELS_ACTION, InvalidTokenError, TokenRegistry, build_label_preview
from .models import HealthStatus
from .config import settings
from .logging import get_logger
from .triggers import ENRICH_HOOK


class AdminServer:
    """Simple HTTP server for health checks, metrics and admin endpoints."""

    def __init__(self, enricher, queue, tokens: Optional[TokenRegistry] = None, api_key: Optional[str] = None):
        self.enricher = enricher
        self.queue = queue
        self.tokens = tokens or TokenRegistry()
        self.api_key = settings.admin_api_key if api_key is None else api_key
        self.logger = get_logger("server")
        self.app = web.Application()
        self.setup_routes()

    def setup_routes(self):
        """Setup HTTP routes."""
        self.app.router.add_get("/health", self.health_handler)
        self.app.router.add_get("/metrics", self.metrics_handler)
        self.app.router.add_get("/attachments/{attachment_id}/labels", self.labels_handler)
        self.app.router.add_post("/attachments/{attachment_id}/labels/refresh", self.refresh_labels_handler)
        self.app.router.add_get("/", self.root_handler)

    def _check_api_key(self, request):
        if self.api_key and request.headers.get("X-API-Key") != self.api_key:
            raise web.HTTPUnauthorized(reason="Invalid API key")

    def _attachment_id(self, request) -> int:
        try:
            attachment_id = int(request.match_info["attachment_id"])
        except ValueError:
            raise web.HTTPBadRequest(reason="Attachment id must be an integer")
        if self.enricher.library.get_attachment(attachment_id) is None:
            raise web.HTTPNotFound(reason=f"Attachment {attachment_id} not found")
        return attachment_id

    async def health_handler(self, request):
        """Health check endpoint."""
        try:
            database_ok = self.enricher.library.ping()
            health_status = HealthStatus(
                status="healthy" if database_ok else "unhealthy",
                metrics={
                    "database": "ok" if database_ok else "unreachable",
                    "pending_jobs": len(self.queue.pending()) if database_ok else None,
                }
            )
            return web.json_response(
                health_status.dict(),
                status=200 if database_ok else 503,
                dumps=_dumps
            )

        except Exception as e:
            self.logger.error(f"Health check failed: {e}")
            return web.json_response(
                {"status": "unhealthy", "error": str(e)},
                status=503
            )

    async def metrics_handler(self, request):
        """Metrics endpoint."""
        try:
            metrics = self.enricher.get_metrics()

            # Add additional system metrics
            import psutil
            system_metrics = {
                "cpu_percent": psutil.cpu_percent(),
                "memory_percent": psutil.virtual_memory().percent,
                "disk_percent": psutil.disk_usage('/').percent,
            }

            metrics.update(system_metrics)

            return web.json_response(metrics)

        except Exception as e:
            self.logger.error(f"Metrics retrieval failed: {e}")
            return web.json_response(
                {"error": str(e)},
                status=500
            )

    async def labels_handler(self, request):
        """Detected labels for one attachment, with a token for refreshing them."""
        self._check_api_key(request)
        attachment_id = self._attachment_id(request)
        preview = build_label_preview(self.enricher, self.tokens, attachment_id)
        return web.json_response(preview.dict())

    async def refresh_labels_handler(self, request):
        """Queue the attachment for enrichment again; requires an unused token."""
        self._check_api_key(request)
        attachment_id = self._attachment_id(request)

        token = request.query.get("nonce")
        if token is None and request.can_read_body:
            try:
                body = await request.json()
                token = body.get("nonce") if isinstance(body, dict) else None
            except ValueError:
                token = None

        try:
            self.tokens.consume_token(UPDATE_LABELS_ACTION.format(id=attachment_id), token)
        except InvalidTokenError as e:
            raise web.HTTPForbidden(reason=str(e))

        scheduled = self.queue.schedule_single_event(time.time(), ENRICH_HOOK, [attachment_id])
        self.logger.info(f"🔁 Label refresh requested for attachment {attachment_id}")
        return web.json_response({"post_id": attachment_id, "scheduled": scheduled}, status=202)

    async def root_handler(self, request):
        """Root endpoint with service information."""
        info = {
            "service": "Rekognition Tagger",
            "version": "1.0.0",
            "endpoints": {
                "/health": "Health check endpoint",
                "/metrics": "Processing metrics",
                "/attachments/{id}/labels": "Detected labels for an attachment",
                "/attachments/{id}/labels/refresh": "Queue an attachment for re-analysis (POST)",
                "/": "Service information"
            },
            "timestamp": datetime.utcnow().isoformat()
        }

        return web.json_response(info)

    async def start(self, port: Optional[int] = None):
        """Start the server."""
        runner = web.AppRunner(self.app)
        await runner.setup()

        port = port or settings.server_port
        site = web.TCPSite(runner, "0.0.0.0", port)
        await site.start()

        self.logger.info(f"Server started on 0.0.0.0:{port}")

        return runner

    async def stop(self, runner):
        """Stop the server."""
        await runner.cleanup()
        self.logger.info("Server stopped")


def _dumps(value) -> str:
    return json.dumps(value, default=str)


async def run_server(enricher, queue):
    """Run the server until cancelled."""
    server = AdminServer(enricher, queue)
    runner = await server.start()

    try:
        while True:
            await asyncio.sleep(1)
    finally:
        await server.stop(runner)
