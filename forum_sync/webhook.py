"""
aiohttp endpoint that receives GitHub webhook deliveries.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from aiohttp import web

log = logging.getLogger("red.forum_sync.webhook")

Dispatch = Callable[[str, Dict[str, Any]], Awaitable[None]]


def verify_signature(secret: str, payload: bytes, signature: Optional[str]) -> bool:
    """
    Verify a GitHub webhook signature (HMAC SHA-256).

    Returns False on any validation failure.
    """
    if not signature or not secret:
        return False
    mac = hmac.new(secret.encode(), msg=payload, digestmod=hashlib.sha256)
    expected = "sha256=" + mac.hexdigest()
    return hmac.compare_digest(expected, signature.strip())


class WebhookServer:
    def __init__(self, dispatch: Dispatch, *, secret: Optional[str] = None, path: str = "/github") -> None:
        self.dispatch = dispatch
        self.secret = secret
        self.path = path
        self.app = web.Application()
        self.app.router.add_post(path, self.handle)
        self._runner: Optional[web.AppRunner] = None
        self._tasks: Set[asyncio.Task] = set()

    async def start(self, host: str, port: int) -> None:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, host, port)
        await site.start()
        log.info("Listening for GitHub webhooks on %s:%s%s", host, port, self.path)

    async def stop(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            log.debug("Webhook listener stopped")

    async def handle(self, request: web.Request) -> web.Response:
        raw = await request.read()
        if self.secret and not verify_signature(self.secret, raw, request.headers.get("X-Hub-Signature-256")):
            log.warning("Rejected GitHub delivery with an invalid signature")
            return web.Response(status=401, text="invalid signature")

        event = request.headers.get("X-GitHub-Event", "")
        if event == "ping":
            return web.Response(text="pong")

        try:
            payload = json.loads(raw)
        except ValueError:
            return web.Response(status=400, text="invalid JSON")
        if not isinstance(payload, dict):
            return web.Response(status=400, text="invalid payload")

        # GitHub gives up on slow deliveries, so answer before the sync runs.
        task = asyncio.create_task(self.dispatch(event, payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return web.Response(status=202, text="accepted")
