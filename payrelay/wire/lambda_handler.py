"""
AWS Lambda adapter — API Gateway (REST, proxy integration) events.

Deploy with handler "payrelay.wire.lambda_handler.handler".

The event loop and the runtime (engine, coordinator) survive between
invocations of a warm container; they are opened on the first event.
"""

from __future__ import annotations

import asyncio
import base64
import json
import re
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from typing import Any

import structlog
from kungfu import Ok, Error
from pydantic import ValidationError

from payrelay.config import Settings
from payrelay.logs import setup_logging
from payrelay.runtime import Runtime, open_runtime
from payrelay.wire._codec import Reply, SettleIn, order_reply, settle_reply

logger = structlog.get_logger(__name__)

type OpenRuntime = Callable[[], AbstractAsyncContextManager[Runtime]]

_SETTLE = re.compile(r"^/orders/(?P<order_id>[^/]+)/settle/?$")
_ORDER = re.compile(r"^/orders/(?P<order_id>[^/]+)/?$")


def _open_from_env() -> AbstractAsyncContextManager[Runtime]:
    settings = Settings()
    setup_logging(settings.log_level, json=True)
    return open_runtime(settings)


def _response(reply: Reply) -> dict[str, Any]:
    return {
        "statusCode": reply.status_code,
        "headers": {"Content-Type": "application/json", **reply.headers},
        "body": json.dumps(reply.body),
        "isBase64Encoded": False,
    }


def _plain(status: int, body: dict[str, Any]) -> dict[str, Any]:
    return _response(Reply(status, body))


class LambdaAdapter:
    """
    Example:
        handler = LambdaAdapter()
        handler(event, context)  # → {"statusCode": 200, "body": "...", ...}
    """

    def __init__(self, open_services: OpenRuntime = _open_from_env) -> None:
        self._open = open_services
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stack: AsyncExitStack | None = None
        self._runtime: Runtime | None = None

    def __call__(self, event: dict[str, Any], context: Any = None) -> dict[str, Any]:
        if self._loop is None:
            self._loop = asyncio.new_event_loop()
        return self._loop.run_until_complete(self.handle(event))

    def close(self) -> None:
        if self._loop is None:
            return
        if self._stack is not None:
            self._loop.run_until_complete(self._stack.aclose())
            self._stack = None
            self._runtime = None
        self._loop.close()
        self._loop = None

    async def _services(self) -> Runtime:
        if self._runtime is None:
            stack = AsyncExitStack()
            self._runtime = await stack.enter_async_context(self._open())
            self._stack = stack
        return self._runtime

    async def handle(self, event: dict[str, Any]) -> dict[str, Any]:
        method = str(event.get("httpMethod", "")).upper()
        path = str(event.get("path", ""))
        headers = {k.lower(): v for k, v in (event.get("headers") or {}).items()}

        if method == "GET" and path.rstrip("/") == "/health":
            return _plain(200, {"status": "ok"})

        if method == "POST" and (m := _SETTLE.match(path)):
            return await self._settle(m["order_id"], event, headers)

        if method == "GET" and path.rstrip("/") == "/reconciliation/at-risk":
            return await self._at_risk()

        if method == "GET" and (m := _ORDER.match(path)):
            rt = await self._services()
            order_id = m["order_id"]
            return _response(order_reply(order_id, await rt.coordinator.status(order_id)))

        return _plain(404, {"detail": f"No route for {method} {path}"})

    async def _settle(
        self,
        order_id: str,
        event: dict[str, Any],
        headers: dict[str, str],
    ) -> dict[str, Any]:
        raw = event.get("body") or ""

        try:
            if event.get("isBase64Encoded"):
                raw = base64.b64decode(raw, validate=True).decode()
            body = SettleIn.model_validate_json(raw)
        except ValidationError as e:
            return _plain(422, {"detail": json.loads(e.json(include_url=False))})
        except ValueError:
            return _plain(422, {"detail": "Body is not valid base64-encoded UTF-8"})

        try:
            attempt = int(headers.get("x-attempt", "1"))
        except ValueError:
            return _plain(422, {"detail": "X-Attempt must be an integer"})
        if attempt < 1:
            return _plain(422, {"detail": "X-Attempt must be >= 1"})

        rt = await self._services()
        result = await rt.coordinator.settle(body.to_domain(order_id))
        return _response(settle_reply(order_id, result, attempt, rt.client_policy))

    async def _at_risk(self) -> dict[str, Any]:
        rt = await self._services()
        match await rt.scanner.scan():
            case Ok(report):
                return _plain(200, report.to_dict())
            case Error(err):
                logger.error("reconciliation_scan_failed", error=err.message)
                return _plain(503, {"detail": "Order store unavailable"})


handler = LambdaAdapter()


__all__ = ("LambdaAdapter", "handler")
