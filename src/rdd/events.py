"""
rdd.events  ──  lifecycle hooks for Record operations

A record type opts into a hook by defining the method named after the event
(``before_append``, ``after_commit`` ...).  The set of hooks a type defines is
captured once, when its schema is registered, so dispatch never probes the
instance at call time.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any, FrozenSet, Optional

from pydantic import BaseModel

if TYPE_CHECKING:
    from .core.record import Record


class EventType(Enum):
    BEFORE_APPEND = "before_append"
    AFTER_APPEND = "after_append"
    BEFORE_REPLACE = "before_replace"
    AFTER_REPLACE = "after_replace"
    BEFORE_DELETE = "before_delete"
    AFTER_DELETE = "after_delete"
    AFTER_COMMIT = "after_commit"


class Operation(Enum):
    APPEND = "append"
    REPLACE = "replace"
    DELETE = "delete"


class EventParameters(BaseModel):
    """Payload handed to every hook."""

    type: EventType
    operation: Optional[Operation] = None
    database: Any = None  # Database or Transaction the statement ran on
    context: Any = None  # caller supplied token, passed through untouched

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


def hooks_of(cls: type) -> FrozenSet[EventType]:
    """Events for which ``cls`` defines a callable hook method."""
    return frozenset(
        event for event in EventType if callable(getattr(cls, event.value, None))
    )


def emit(
    record: Record,
    event: EventType,
    *,
    operation: Optional[Operation] = None,
    database: Any = None,
    context: Any = None,
) -> None:
    """Run ``record``'s hook for ``event`` if its type defines one.

    Exceptions raised by the hook propagate to the caller.
    """
    if event not in record.schema.hooks:
        return
    params = EventParameters(type=event, operation=operation, database=database, context=context)
    getattr(record, event.value)(params)
