"""
HTTP API — FastAPI app over the coordinator.

    POST /orders/{order_id}/settle     settle (X-Attempt: n for retry advice)
    GET  /orders/{order_id}            read-only status
    GET  /reconciliation/at-risk       abandoned in-flight orders
    GET  /health

Run:
    payrelay serve --simulate
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any

import structlog
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from kungfu import Ok, Error

from payrelay.config import Settings
from payrelay.coordinator import PaymentCoordinator
from payrelay.gateway import Gateway
from payrelay.reconcile import ReconciliationScanner
from payrelay.retry import RetryPolicy
from payrelay.runtime import open_runtime
from payrelay.wire import Reply, SettleIn, SettleOut, OrderOut, order_reply, settle_reply

logger = structlog.get_logger(__name__)


def _json(reply: Reply) -> JSONResponse:
    return JSONResponse(reply.body, status_code=reply.status_code, headers=reply.headers)


def create_app(
    coordinator: PaymentCoordinator | None = None,
    scanner: ReconciliationScanner | None = None,
    client_policy: RetryPolicy | None = None,
    lifespan: Any = None,
) -> FastAPI:
    """
    Build the app around ready services, or leave them to `lifespan`.

    Services live on app.state so a lifespan can install them on startup.
    """
    app = FastAPI(title="payrelay", lifespan=lifespan)
    app.state.coordinator = coordinator
    app.state.scanner = scanner
    app.state.client_policy = client_policy or RetryPolicy()

    def coordinator_of(request: Request) -> PaymentCoordinator:
        found: PaymentCoordinator | None = request.app.state.coordinator
        if found is None:
            raise HTTPException(status_code=503, detail="Coordinator not ready")
        return found

    @app.post("/orders/{order_id}/settle", response_model=SettleOut)
    async def settle(
        order_id: str,
        body: SettleIn,
        request: Request,
        x_attempt: Annotated[int, Header(ge=1)] = 1,
    ) -> JSONResponse:
        result = await coordinator_of(request).settle(body.to_domain(order_id))
        return _json(settle_reply(order_id, result, x_attempt, request.app.state.client_policy))

    @app.get("/orders/{order_id}", response_model=OrderOut)
    async def order_status(order_id: str, request: Request) -> JSONResponse:
        result = await coordinator_of(request).status(order_id)
        return _json(order_reply(order_id, result))

    @app.get("/reconciliation/at-risk")
    async def at_risk(request: Request) -> dict[str, Any]:
        found: ReconciliationScanner | None = request.app.state.scanner
        if found is None:
            raise HTTPException(status_code=503, detail="Scanner not configured")
        match await found.scan():
            case Ok(report):
                return report.to_dict()
            case Error(err):
                logger.error("reconciliation_scan_failed", error=err.message)
                raise HTTPException(status_code=503, detail="Order store unavailable")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


def app_from_settings(settings: Settings, gateway: Gateway | None = None) -> FastAPI:
    """App whose services are opened on startup and closed on shutdown."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with open_runtime(settings, gateway) as rt:
            app.state.coordinator = rt.coordinator
            app.state.scanner = rt.scanner
            app.state.client_policy = rt.client_policy

            stop = asyncio.Event()
            sweeper = asyncio.create_task(
                rt.scanner.run_periodically(settings.scan_interval(), stop)
            )
            try:
                yield
            finally:
                stop.set()
                await sweeper

    return create_app(lifespan=lifespan)


__all__ = ("create_app", "app_from_settings")
