"""
Fire-and-forget side effects.

A best-effort operation (dealer notification, audit entry, email enqueue) must never fail or roll
back the business operation that triggered it. fire_and_forget runs it, logs and counts any
failure, and hands back an Outcome the caller is free to ignore.
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, TypeVar

from poolorders.metrics import side_effects_failed_total

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def fire_and_forget(kind: str, operation: Awaitable[T], **context: Any) -> Outcome[T]:
    try:
        value = await operation
    except Exception as e:
        side_effects_failed_total.labels(kind=kind).inc()
        logger.warning("%s failed, continuing (%s): %s", kind, context or "-", e)
        return Outcome(error=e)
    return Outcome(value=value)
