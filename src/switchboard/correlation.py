"""Correlation table for in-flight requests."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Iterable
from typing import Any

from switchboard.errors import FailureReason, MediatorError
from switchboard.types import CorrelationEntry, CorrelationState

logger = logging.getLogger(__name__)

DEFAULT_SETTLED_MEMORY = 256


class CorrelationTable:
    """Tracks outstanding requests by correlation id.

    Entries leave the live table as soon as they settle. A bounded memory of
    settled entries lets late responses be told apart from unknown ids and
    lets ``wait`` return for requests that already finished.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        settled_memory: int = DEFAULT_SETTLED_MEMORY,
    ) -> None:
        self._clock = clock
        self._ids = itertools.count(1)
        self._pending: dict[str, CorrelationEntry] = {}
        self._settled: OrderedDict[str, CorrelationEntry] = OrderedDict()
        self._settled_memory = max(1, settled_memory)
        self._waiters: dict[str, list[asyncio.Future[CorrelationEntry]]] = {}

    def now(self) -> float:
        return self._clock()

    def create(
        self,
        method: str,
        *,
        timeout: float,
        target_tokens: Iterable[str] = (),
    ) -> CorrelationEntry:
        correlation_id = f"c{next(self._ids)}"
        created_at = self._clock()
        entry = CorrelationEntry(
            correlation_id=correlation_id,
            method=method,
            created_at=created_at,
            timeout_at=created_at + max(0.0, timeout),
            target_tokens=tuple(target_tokens),
        )
        self._pending[correlation_id] = entry
        return entry

    def get(self, correlation_id: str) -> CorrelationEntry | None:
        return self._pending.get(correlation_id) or self._settled.get(correlation_id)

    def is_pending(self, correlation_id: str) -> bool:
        return correlation_id in self._pending

    def was_settled(self, correlation_id: str) -> bool:
        return correlation_id in self._settled

    def pending(self) -> list[CorrelationEntry]:
        return list(self._pending.values())

    def resolve(self, correlation_id: str, result: Any) -> CorrelationEntry | None:
        entry = self._pending.get(correlation_id)
        if entry is None:
            return None
        entry.result = result
        return self._settle(entry, CorrelationState.RESOLVED)

    def fail(
        self,
        correlation_id: str,
        *,
        reason: FailureReason,
        error: dict[str, Any] | None = None,
    ) -> CorrelationEntry | None:
        entry = self._pending.get(correlation_id)
        if entry is None:
            return None
        entry.error = error
        entry.reason = reason
        return self._settle(entry, CorrelationState.FAILED)

    def expire(self, correlation_id: str) -> CorrelationEntry | None:
        entry = self._pending.get(correlation_id)
        if entry is None:
            return None
        entry.reason = FailureReason.REQUEST_TIMED_OUT
        return self._settle(entry, CorrelationState.TIMED_OUT)

    def expire_due(self, now: float | None = None) -> list[CorrelationEntry]:
        """Time out every pending entry whose deadline has passed."""
        current = self._clock() if now is None else now
        overdue = [
            entry.correlation_id
            for entry in self._pending.values()
            if entry.timeout_at <= current
        ]
        expired = [self.expire(correlation_id) for correlation_id in overdue]
        return [entry for entry in expired if entry is not None]

    def fail_all(self, *, reason: FailureReason) -> list[CorrelationEntry]:
        failed = [
            self.fail(correlation_id, reason=reason)
            for correlation_id in list(self._pending)
        ]
        return [entry for entry in failed if entry is not None]

    def orphan_all(self) -> list[CorrelationEntry]:
        orphaned = []
        for correlation_id in list(self._pending):
            entry = self._pending[correlation_id]
            orphaned.append(self._settle(entry, CorrelationState.ORPHANED))
        return orphaned

    async def wait(self, correlation_id: str) -> CorrelationEntry:
        """Suspend until the entry settles and return it."""
        settled = self._settled.get(correlation_id)
        if settled is not None:
            return settled
        if correlation_id not in self._pending:
            raise MediatorError(
                "request_not_found", f"unknown correlation id: {correlation_id}"
            )
        future: asyncio.Future[CorrelationEntry] = (
            asyncio.get_running_loop().create_future()
        )
        self._waiters.setdefault(correlation_id, []).append(future)
        return await future

    def _settle(
        self, entry: CorrelationEntry, state: CorrelationState
    ) -> CorrelationEntry:
        entry.state = state
        del self._pending[entry.correlation_id]
        self._settled[entry.correlation_id] = entry
        while len(self._settled) > self._settled_memory:
            self._settled.popitem(last=False)

        for future in self._waiters.pop(entry.correlation_id, []):
            if not future.done():
                future.set_result(entry)

        logger.debug(
            "request_settled",
            extra={
                "correlation_id": entry.correlation_id,
                "method": entry.method,
                "state": state.value,
            },
        )
        return entry

    def __len__(self) -> int:
        return len(self._pending)
