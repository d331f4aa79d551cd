"""
Scheduled polling engine for the Uptrends monitoring API.

Components, leaf-first:

- :mod:`.dates` — relative-date tokens
- :mod:`.registry` — operation / credential validation
- :mod:`.request_builder` — request descriptors per cycle
- :mod:`.client` — parallel httpx client with callbacks
- :mod:`.dispatch` — one concurrent cycle
- :mod:`.outcomes` — outcome → records
- :mod:`.poller` — everything wired to a schedule
"""

from uptrends_spine.polling.client import HttpFailure, HttpSuccess, ParallelClient
from uptrends_spine.polling.config import PollerConfig
from uptrends_spine.polling.dates import DATE_TOKENS, render, resolve
from uptrends_spine.polling.dispatch import CycleOutcome, DispatchEngine
from uptrends_spine.polling.outcomes import FAILURE_FIELD, FAILURE_TAG, OutcomeMapper
from uptrends_spine.polling.poller import CycleReport, UptrendsPoller
from uptrends_spine.polling.records import OutputRecord
from uptrends_spine.polling.registry import (
    BASE_URL,
    Credentials,
    Operation,
    OperationRegistry,
    normalize,
)
from uptrends_spine.polling.request_builder import RequestDescriptor, build
from uptrends_spine.polling.sinks import JsonLinesSink, ListSink, QueueSink

__all__ = [
    "BASE_URL",
    "DATE_TOKENS",
    "FAILURE_FIELD",
    "FAILURE_TAG",
    "Credentials",
    "CycleOutcome",
    "CycleReport",
    "DispatchEngine",
    "HttpFailure",
    "HttpSuccess",
    "JsonLinesSink",
    "ListSink",
    "Operation",
    "OperationRegistry",
    "OutcomeMapper",
    "OutputRecord",
    "ParallelClient",
    "PollerConfig",
    "QueueSink",
    "RequestDescriptor",
    "UptrendsPoller",
    "build",
    "normalize",
    "render",
    "resolve",
]
