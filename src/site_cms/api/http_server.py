import asyncio
import json
import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Awaitable, Callable

import httpx

from site_cms.api.service import CmsService, build_service
from site_cms.config import CmsConfig, get_cms_config
from site_cms.store.sqlite_store import ContentStore

logger = logging.getLogger(__name__)


def create_server(
    host: str | None = None,
    port: int | None = None,
    config: CmsConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ThreadingHTTPServer:
    config = config or get_cms_config()
    if config.store_configured:
        ContentStore(config.db_path).init_schema()

    def run(handler: Callable[[CmsService], Awaitable[tuple[int, dict]]]) -> tuple[int, dict]:
        # One service and event loop per request; nothing is shared between requests.
        async def _run() -> tuple[int, dict]:
            service = build_service(config, transport=transport)
            try:
                return await handler(service)
            finally:
                await service.aclose()

        return asyncio.run(_run())

    class SiteCmsHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:  # noqa: N802
            if self.path == "/health":
                self._write_json(200, {"status": "ok"})
                return
            self._write_json(404, {"error": "not found"})

        def do_POST(self) -> None:  # noqa: N802
            if self.path == "/api/cms":
                body = self._read_json_body()
                authorization = self.headers.get("Authorization")
                self._dispatch(lambda service: service.handle_cms_request(authorization, body))
                return

            if self.path == "/api/telegram/webhook":
                body = self._read_json_body()
                token = self.headers.get("X-Telegram-Bot-Api-Secret-Token")
                self._dispatch(lambda service: service.handle_webhook(token, body))
                return

            if self.path == "/api/maintenance":
                authorization = self.headers.get("Authorization")
                self._dispatch(lambda service: service.handle_maintenance(authorization))
                return

            self._write_json(404, {"error": "not found"})

        def _dispatch(self, handler: Callable[[CmsService], Awaitable[tuple[int, dict]]]) -> None:
            try:
                status, payload = run(handler)
            except Exception as exc:
                logger.exception("Request to %s failed", self.path)
                self._write_json(500, {"success": False, "error": str(exc)})
                return
            self._write_json(status, payload)

        def log_message(self, format: str, *args) -> None:  # noqa: A003
            logger.debug("%s - %s", self.address_string(), format % args)

        def _read_json_body(self) -> dict | None:
            try:
                content_len = int(self.headers.get("Content-Length", "0"))
            except ValueError:
                return None
            raw = self.rfile.read(content_len)
            try:
                parsed = json.loads(raw.decode("utf-8"))
            except (UnicodeDecodeError, json.JSONDecodeError):
                return None
            if not isinstance(parsed, dict):
                return None
            return parsed

        def _write_json(self, status_code: int, payload: dict) -> None:
            encoded = json.dumps(payload, default=str).encode("utf-8")
            self.send_response(status_code)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(encoded)))
            self.end_headers()
            self.wfile.write(encoded)

    return ThreadingHTTPServer(
        (host or config.host, config.port if port is None else port), SiteCmsHandler
    )
