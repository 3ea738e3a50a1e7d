import asyncio
from collections import defaultdict, deque
from typing import Optional

from aiohttp import web
from loguru import logger

API_PREFIX = "/api/v1"


class ContentGemServer:
    """In-process stand-in for the ContentGem API.

    Responses are queued per ``(method, path)`` and replayed in order; the
    last queued response for a route keeps being served once the queue is
    down to one entry, so a status endpoint can stay ``generating`` forever.
    Every request is recorded in ``self.requests``.
    """

    def __init__(self, api_key: str = "cg_test_api_key_123"):
        self.api_key = api_key
        self.requests: list[dict] = []
        self.responses: dict[tuple[str, str], deque] = defaultdict(deque)
        self.app = web.Application()
        self.app.router.add_route("*", API_PREFIX + "/{tail:.*}", self.handle_request)
        self.runner: Optional[web.AppRunner] = None
        self.logger = logger

    def queue(
        self, method: str, path: str, *payloads: dict, status: int = 200, delay: float = 0
    ) -> None:
        for payload in payloads:
            self.responses[(method.upper(), path)].append(
                {"status": status, "payload": payload, "delay": delay}
            )

    def queue_text(
        self,
        method: str,
        path: str,
        text: str,
        status: int = 200,
        content_type: str = "text/html",
    ) -> None:
        """Queue a response whose body is not a JSON envelope."""
        self.responses[(method.upper(), path)].append(
            {"status": status, "text": text, "content_type": content_type, "delay": 0}
        )

    def requests_to(self, method: str, path: str) -> list[dict]:
        return [
            r for r in self.requests if r["method"] == method and r["path"] == path
        ]

    async def _read_body(self, request: web.Request) -> tuple[Optional[dict], dict]:
        if not request.can_read_body:
            return None, {}
        if request.content_type == "application/json":
            return await request.json(), {}
        if request.content_type == "multipart/form-data":
            form = {}
            post = await request.post()
            for name, value in post.items():
                if isinstance(value, web.FileField):
                    form[name] = {
                        "filename": value.filename,
                        "content": value.file.read(),
                    }
                else:
                    form[name] = value
            return None, form
        return None, {}

    async def handle_request(self, request: web.Request) -> web.Response:
        path = "/" + request.match_info["tail"]
        body, form = await self._read_body(request)
        self.requests.append(
            {
                "method": request.method,
                "path": path,
                "query": dict(request.query),
                "headers": dict(request.headers),
                "json": body,
                "form": form,
            }
        )

        if request.headers.get("X-API-Key") != self.api_key:
            self.logger.info(f"Rejecting {request.method} {path}: bad API key")
            return web.json_response(
                {"success": False, "error": "UNAUTHORIZED", "message": "Invalid API key"},
                status=401,
            )

        queued = self.responses.get((request.method, path))
        if not queued:
            self.logger.info(f"No response queued for {request.method} {path}")
            return web.json_response(
                {"success": False, "error": "NOT_FOUND", "message": f"No route {path}"},
                status=404,
            )

        queued_response = queued.popleft() if len(queued) > 1 else queued[0]
        if queued_response["delay"]:
            await asyncio.sleep(queued_response["delay"])

        status = queued_response["status"]
        self.logger.info(f"Returning {status} for {request.method} {path}")
        if "text" in queued_response:
            return web.Response(
                text=queued_response["text"],
                status=status,
                content_type=queued_response["content_type"],
            )
        return web.json_response(queued_response["payload"], status=status)

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
            self.logger.info("Server stopped")
