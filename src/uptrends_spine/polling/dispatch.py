"""
Dispatch/collect engine — one cycle of concurrent requests.

::

    run_cycle(registry)
      │
      ├── today = clock()                 (read once per cycle)
      ├── for each operation:
      │       build request  ──► client.get(...).on_success(..).on_failure(..)
      │
      ├── client.execute()                (barrier: every callback has run)
      │
      └── [CycleOutcome(name, operation, request, outcome, elapsed), ...]

Callbacks run on the client's event loop and each writes only the slot
reserved for its own operation, so no locking is needed. A request that
cannot even be built becomes that operation's ``HttpFailure``; the other
operations of the cycle are unaffected.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Any

from uptrends_spine.core.errors import UptrendsSpineError
from uptrends_spine.core.logging import get_logger
from uptrends_spine.polling.client import HttpFailure, Outcome, ParallelClient
from uptrends_spine.polling.registry import Operation, OperationRegistry
from uptrends_spine.polling.request_builder import RequestDescriptor, build_for

logger = get_logger(__name__)


@dataclass(frozen=True)
class CycleOutcome:
    """The outcome of one operation's request within one cycle."""

    name: str
    operation: Operation
    request: RequestDescriptor | None
    outcome: Outcome
    elapsed: float

    @property
    def url(self) -> str:
        if self.request is not None:
            return self.request.full_url
        return self.operation.url

    @property
    def succeeded(self) -> bool:
        return not isinstance(self.outcome, HttpFailure)


class DispatchEngine:
    """Fires every operation's request concurrently and collects the outcomes.

    Args:
        client: HTTP collaborator with ``get()`` / ``execute()``.
        clock: Returns the cycle's reference date (defaults to ``date.today``).
        timer: Monotonic seconds used for ``elapsed``.
    """

    def __init__(
        self,
        client: ParallelClient,
        *,
        clock: Callable[[], date] = date.today,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._clock = clock
        self._timer = timer

    def run_cycle(self, registry: OperationRegistry) -> list[CycleOutcome]:
        today = self._clock()
        started = self._timer()
        auth = (registry.credentials.user, registry.credentials.password)

        slots: dict[str, CycleOutcome | None] = dict.fromkeys(registry.operations)

        for operation in registry:
            try:
                request = build_for(operation, registry.credentials, today)
            except UptrendsSpineError as e:
                logger.error("cycle.build_failed", operation=operation.name, error=e.to_dict())
                slots[operation.name] = CycleOutcome(
                    name=operation.name,
                    operation=operation,
                    request=None,
                    outcome=HttpFailure.from_exception(e),
                    elapsed=self._timer() - started,
                )
                continue

            logger.debug("request.fetching", operation=operation.name, url=request.full_url)
            record = self._recorder(slots, operation, request, started)
            self._client.get(request.url, params=request.query, auth=auth) \
                .on_success(record) \
                .on_failure(record)

        self._client.execute()

        outcomes = []
        for name, slot in slots.items():
            if slot is None:
                logger.warning("cycle.outcome_missing", operation=name)
                continue
            outcomes.append(slot)
        return outcomes

    def _recorder(
        self,
        slots: dict[str, CycleOutcome | None],
        operation: Operation,
        request: RequestDescriptor,
        started: float,
    ) -> Callable[[Outcome], Any]:
        def _record(outcome: Outcome) -> None:
            slots[operation.name] = CycleOutcome(
                name=operation.name,
                operation=operation,
                request=request,
                outcome=outcome,
                elapsed=self._timer() - started,
            )

        return _record


__all__ = ["CycleOutcome", "DispatchEngine"]
