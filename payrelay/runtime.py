"""
Runtime — wires Settings into a live store, coordinator and scanner.

    async with open_runtime(Settings()) as rt:
        await rt.coordinator.settle(draft)

Shared by the HTTP app, the Lambda adapter and the CLI.
"""

from __future__ import annotations

import importlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from payrelay.config import Settings
from payrelay.coordinator import PaymentCoordinator, coordinator
from payrelay.events import LogSink
from payrelay.gateway import Gateway, SimulatedGateway
from payrelay.reconcile import ReconciliationScanner
from payrelay.retry import RetryPolicy
from payrelay.store import SQLAlchemyStore, create_database

logger = structlog.get_logger(__name__)


def load_gateway(spec: str) -> Gateway:
    """
    Resolve a gateway from "module:factory" (factory called with no args).

    "simulated" gives an in-process SimulatedGateway.
    """
    if spec == "simulated":
        return SimulatedGateway()

    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Gateway must be 'module:factory', got {spec!r}")

    factory = getattr(importlib.import_module(module_name), attr)
    return factory()


@dataclass(frozen=True, slots=True)
class Runtime:
    settings: Settings
    engine: AsyncEngine
    store: SQLAlchemyStore
    coordinator: PaymentCoordinator
    scanner: ReconciliationScanner

    @property
    def client_policy(self) -> RetryPolicy:
        return self.settings.client_retry_policy()


@asynccontextmanager
async def open_runtime(
    settings: Settings,
    gateway: Gateway | None = None,
) -> AsyncIterator[Runtime]:
    """Open the database and assemble the services; dispose on exit."""
    if gateway is None:
        if settings.gateway is None:
            raise ValueError("No gateway configured (set PAYRELAY_GATEWAY)")
        gateway = load_gateway(settings.gateway)

    session_factory, engine = await create_database(settings.database_url)
    store = SQLAlchemyStore(session_factory)

    runtime = Runtime(
        settings=settings,
        engine=engine,
        store=store,
        coordinator=(
            coordinator(store)
            .gateway(gateway)
            .policy(settings.coordinator_policy())
            .events(LogSink())
            .build()
        ),
        scanner=ReconciliationScanner(store, threshold=settings.abandonment_threshold()),
    )
    logger.info("runtime_opened", database=engine.url.render_as_string(hide_password=True))
    try:
        yield runtime
    finally:
        await runtime.coordinator.drain()
        await engine.dispose()


__all__ = (
    "load_gateway",
    "Runtime",
    "open_runtime",
)
