"""
Events — observability stream of order transitions.

    from payrelay import events as E

    sink = E.fan_out(E.LogSink(), E.MemorySink())
    sink.emit(E.TransitionEvent.of(order))
"""

from payrelay.events._sinks import (
    TransitionEvent,
    EventSink,
    LogSink,
    MemorySink,
    FanOut,
    fan_out,
)

__all__ = (
    "TransitionEvent",
    "EventSink",
    "LogSink",
    "MemorySink",
    "FanOut",
    "fan_out",
)
