"""
SQLAlchemy integration — durable order store.

Usage:
    session_factory, engine = await create_database("sqlite+aiosqlite:///./payrelay.db")
    store = SQLAlchemyStore(session_factory)

    claim = await store.create_if_absent(draft, ttl=timedelta(days=30))

Atomicity:
    create_if_absent → INSERT ... ON CONFLICT (order_id) DO NOTHING
    transition       → UPDATE ... WHERE order_id = :id AND status = :expected

Both are single statements, so two processes racing on the same order_id
see exactly one winner without any application-level lock.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, cast

from sqlalchemy import BigInteger, DateTime, Integer, String, Text, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from kungfu import Result, Ok, Error

from payrelay._types import Clock, utcnow
from payrelay.orders import Order, OrderDraft, OrderStatus, Receipt, can_transition
from payrelay.store._store import PURGEABLE
from payrelay.store._types import (
    Claim,
    StoreError,
    ConflictError,
    NotFound,
    InvalidTransition,
    TransitionFault,
)


# ═══════════════════════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


# ═══════════════════════════════════════════════════════════════════════════════
# Orders Table
# ═══════════════════════════════════════════════════════════════════════════════


class OrderRow(Base):
    """
    Orders table — one row per order_id.

    Note: processor_receipt хранится как JSON text.
    Почему: Receipt непрозрачен для БД, нужен только round-trip.
    """

    __tablename__ = "orders"

    order_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    # Purchase (immutable after insert)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    feature_id: Mapped[str] = mapped_column(String(128), nullable=False)
    artifact_ref: Mapped[str] = mapped_column(Text, nullable=False)

    # Settlement state
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    processor_receipt: Mapped[str | None] = mapped_column(Text, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def to_order(self) -> Order:
        return Order(
            order_id=self.order_id,
            user_id=self.user_id,
            amount=self.amount,
            feature_id=self.feature_id,
            artifact_ref=self.artifact_ref,
            status=OrderStatus(self.status),
            created_at=self.created_at,
            updated_at=self.updated_at,
            expires_at=self.expires_at,
            processor_receipt=(
                Receipt.from_json(self.processor_receipt)
                if self.processor_receipt
                else None
            ),
            failure_reason=self.failure_reason,
            attempts=self.attempts,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Database Setup
# ═══════════════════════════════════════════════════════════════════════════════


async def create_schema(engine: AsyncEngine) -> None:
    """Create the orders table if missing."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def create_database(
    url: str = "sqlite+aiosqlite:///:memory:",
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create database and return (session_factory, engine)."""
    engine = create_async_engine(url, echo=False)
    await create_schema(engine)
    return async_sessionmaker(engine, expire_on_commit=False), engine


_INSERTS: dict[str, Any] = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


# ═══════════════════════════════════════════════════════════════════════════════
# SQLAlchemy Store
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyStore:
    """
    Durable order store for SQLite / PostgreSQL.

    Example:
        session_factory, engine = await create_database(url)
        store = SQLAlchemyStore(session_factory)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utcnow,
    ) -> None:
        """
        Args:
            session_factory: SQLAlchemy async session factory
            clock: Source of timestamps (naive UTC)
        """
        self._session_factory = session_factory
        self._clock = clock

    async def get(self, order_id: str) -> Result[Order, NotFound | StoreError]:
        """Get record by order_id."""
        try:
            async with self._session_factory() as session:
                row = await self._load(session, order_id)
                if row is None:
                    return Error(NotFound(order_id))
                return Ok(row.to_order())

        except Exception as e:
            return Error(StoreError(f"Failed to get: {e}", e))

    async def create_if_absent(
        self,
        draft: OrderDraft,
        ttl: timedelta | None,
    ) -> Result[Claim, StoreError]:
        """Insert PENDING record atomically; return existing row untouched."""
        try:
            async with self._session_factory() as session:
                insert = _INSERTS.get(session.get_bind().dialect.name)
                if insert is None:
                    return Error(StoreError(
                        f"Unsupported dialect: {session.get_bind().dialect.name}"
                    ))

                now = self._clock()
                pending = Order.pending(draft, now, now + ttl if ttl else None)

                stmt = (
                    insert(OrderRow)
                    .values(
                        order_id=pending.order_id,
                        user_id=pending.user_id,
                        amount=pending.amount,
                        feature_id=pending.feature_id,
                        artifact_ref=pending.artifact_ref,
                        status=pending.status.value,
                        attempts=0,
                        created_at=pending.created_at,
                        updated_at=pending.updated_at,
                        expires_at=pending.expires_at,
                    )
                    .on_conflict_do_nothing(index_elements=["order_id"])
                )
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()

                row = await self._load(session, draft.order_id)
                if row is None:
                    return Error(StoreError(f"Record vanished after insert: {draft.order_id}"))

                return Ok(Claim(row.to_order(), created=cursor.rowcount > 0))

        except Exception as e:
            return Error(StoreError(f"Failed to create: {e}", e))

    async def transition(
        self,
        order_id: str,
        expected: OrderStatus,
        new: OrderStatus,
        *,
        receipt: Receipt | None = None,
        reason: str | None = None,
    ) -> Result[Order, TransitionFault]:
        """Conditional UPDATE on (order_id, status)."""
        try:
            async with self._session_factory() as session:
                if not can_transition(expected, new):
                    return Error(await self._explain_miss(session, order_id, expected, new))

                values: dict[str, Any] = {
                    "status": new.value,
                    "updated_at": self._clock(),
                    "failure_reason": reason if new != OrderStatus.PAID else None,
                }
                if new == OrderStatus.CHARGING:
                    values["attempts"] = OrderRow.attempts + 1
                if receipt is not None:
                    # Write-once: an existing receipt always wins.
                    values["processor_receipt"] = func.coalesce(
                        OrderRow.processor_receipt, receipt.to_json()
                    )

                stmt = (
                    update(OrderRow)
                    .where(OrderRow.order_id == order_id, OrderRow.status == expected.value)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()

                if cursor.rowcount == 0:
                    return Error(await self._explain_miss(session, order_id, expected, new))

                row = await self._load(session, order_id)
                if row is None:
                    return Error(NotFound(order_id))
                return Ok(row.to_order())

        except Exception as e:
            return Error(StoreError(f"Failed to transition: {e}", e))

    async def scan(
        self,
        statuses: Iterable[OrderStatus],
        updated_before: datetime,
        limit: int = 500,
    ) -> Result[list[Order], StoreError]:
        """List stale records, oldest first."""
        try:
            async with self._session_factory() as session:
                stmt = (
                    select(OrderRow)
                    .where(
                        OrderRow.status.in_([s.value for s in statuses]),
                        OrderRow.updated_at < updated_before,
                    )
                    .order_by(OrderRow.updated_at)
                    .limit(limit)
                )
                rows = (await session.execute(stmt)).scalars().all()
                return Ok([row.to_order() for row in rows])

        except Exception as e:
            return Error(StoreError(f"Failed to scan: {e}", e))

    async def purge_expired(self, now: datetime | None = None) -> Result[int, StoreError]:
        """Delete expired, non-CHARGING records."""
        try:
            async with self._session_factory() as session:
                stmt = (
                    delete(OrderRow)
                    .where(
                        OrderRow.expires_at.is_not(None),
                        OrderRow.expires_at < (now or self._clock()),
                        OrderRow.status.in_([s.value for s in PURGEABLE]),
                    )
                    .execution_options(synchronize_session=False)
                )
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()
                return Ok(cursor.rowcount)

        except Exception as e:
            return Error(StoreError(f"Failed to purge: {e}", e))

    async def _load(self, session: AsyncSession, order_id: str) -> OrderRow | None:
        stmt = (
            select(OrderRow)
            .where(OrderRow.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _explain_miss(
        self,
        session: AsyncSession,
        order_id: str,
        expected: OrderStatus,
        new: OrderStatus,
    ) -> ConflictError | NotFound | InvalidTransition:
        """Why a transition did not apply: missing, moved, or illegal edge."""
        row = await self._load(session, order_id)
        if row is None:
            return NotFound(order_id)
        actual = OrderStatus(row.status)
        if actual != expected:
            return ConflictError(order_id, expected, actual)
        return InvalidTransition(order_id, actual, new)


__all__ = (
    "Base",
    "OrderRow",
    "create_schema",
    "create_database",
    "SQLAlchemyStore",
)
