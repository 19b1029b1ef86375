"""
Store — durable, atomically-writable order records keyed by order_id.

    from payrelay import store as S

    store = S.MemoryStore()                       # tests / single process
    store = S.SQLAlchemyStore(session_factory)    # SQLite / PostgreSQL

    claim = await store.create_if_absent(draft, ttl=timedelta(days=30))
    moved = await store.transition("o1", OrderStatus.PENDING, OrderStatus.CHARGING)

Both backends honour the same contract:
    - create_if_absent never overwrites
    - transition is compare-and-swap on status
    - only legal lifecycle edges are applied
"""

from payrelay.store._types import (
    Claim,
    StoreError,
    ConflictError,
    NotFound,
    InvalidTransition,
    TransitionFault,
)
from payrelay.store._store import (
    Store,
    check_transition,
    MemoryStore,
)
from payrelay.store._sqlalchemy import (
    Base,
    OrderRow,
    create_schema,
    create_database,
    SQLAlchemyStore,
)

__all__ = (
    # Types
    "Claim",
    "StoreError",
    "ConflictError",
    "NotFound",
    "InvalidTransition",
    "TransitionFault",
    # Store
    "Store",
    "check_transition",
    "MemoryStore",
    # SQLAlchemy
    "Base",
    "OrderRow",
    "create_schema",
    "create_database",
    "SQLAlchemyStore",
)
