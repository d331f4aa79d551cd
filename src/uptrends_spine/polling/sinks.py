"""Record sinks. The poller only needs ``put(record)``."""

from __future__ import annotations

import queue
import sys
import threading
from typing import IO, Protocol, runtime_checkable

from uptrends_spine.polling.records import OutputRecord


@runtime_checkable
class Sink(Protocol):
    def put(self, record: OutputRecord) -> None:
        ...


class ListSink:
    """Collects records in memory (tests, ``once``)."""

    def __init__(self) -> None:
        self.records: list[OutputRecord] = []
        self._lock = threading.Lock()

    def put(self, record: OutputRecord) -> None:
        with self._lock:
            self.records.append(record)

    def __len__(self) -> int:
        return len(self.records)


class QueueSink:
    """Hands records to a host pipeline through a ``queue.Queue``."""

    def __init__(self, target: queue.Queue | None = None) -> None:
        self.queue: queue.Queue = target if target is not None else queue.Queue()

    def put(self, record: OutputRecord) -> None:
        self.queue.put(record)


class JsonLinesSink:
    """Writes one JSON document per record to a text stream (stdout by default)."""

    def __init__(self, stream: IO[str] | None = None) -> None:
        self._stream = stream or sys.stdout
        self._lock = threading.Lock()

    def put(self, record: OutputRecord) -> None:
        line = record.to_json()
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()


__all__ = ["Sink", "ListSink", "QueueSink", "JsonLinesSink"]
