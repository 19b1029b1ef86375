"""
Compiled graph — build the nodnod agent once, run it per request.

The target node's dependencies are discovered by nodnod; callers only
inject the roots.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast
from collections.abc import Callable, Coroutine

from nodnod import Scope, Value, EventLoopAgent, Node


# ═══════════════════════════════════════════════════════════════════════════════
# Run — one execution against a compiled agent
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Run[T]:
    """Awaitable run of a compiled graph with its injected roots."""

    _target: type[T]
    _agent: EventLoopAgent
    _injections: tuple[object, ...]

    def inject(self, value: object) -> Run[T]:
        """Inject a value under its runtime type."""
        return Run(self._target, self._agent, (*self._injections, value))

    def __await__(self) -> Any:
        return self._execute().__await__()

    async def _execute(self) -> T:
        scope = Scope(detail="run")
        async with scope:
            for value in self._injections:
                scope.push(Value(type(value), value))

            run_method = cast(
                Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
                getattr(self._agent, "run"),
            )
            await run_method(scope, {})

            found = scope.get(self._target)
            if found is None:
                raise KeyError(f"{self._target.__name__} not resolved")
            return cast(T, found.value)


# ═══════════════════════════════════════════════════════════════════════════════
# Graph — compiled target
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, slots=True)
class Graph[T]:
    """
    Compiled graph. Compile at import time, run per request.

    Example:
        decisions = compile(DecisionNode)
        node = await decisions.inject(SettleSpec(draft, order))
    """

    _target: type[T]
    _agent: EventLoopAgent

    def inject(self, value: object) -> Run[T]:
        return Run(self._target, self._agent, (value,))


def compile[T](target: type[T]) -> Graph[T]:
    """Build the agent for `target` and everything it depends on."""
    agent = EventLoopAgent.build({cast(type[Node[Any, Any]], target)})
    return Graph(target, agent)


__all__ = ("Run", "Graph", "compile")
