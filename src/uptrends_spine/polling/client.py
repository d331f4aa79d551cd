"""
Parallel HTTP client — queue GETs with callbacks, then flush them as one batch.

WHY
───
A cycle fires one request per operation. They are independent, so they run
concurrently, but the cycle must not end until every one of them has
produced an outcome. The client therefore separates *queueing* a request
(``get()``, returns immediately) from *executing* the batch (``execute()``,
blocks until every callback has run).

ARCHITECTURE
────────────
::

    ParallelClient
      ├── .get(url, params=, auth=)  ─ enqueue, returns PendingRequest
      │       .on_success(cb)        ─ cb(HttpSuccess)
      │       .on_failure(cb)        ─ cb(HttpFailure)
      └── .execute()                 ─ asyncio.gather over the queued batch
                                       inside one httpx.AsyncClient

    HttpSuccess  code, headers, message, times_retried, body
    HttpFailure  error, backtrace

Any HTTP response, including 4xx and 5xx, is an ``HttpSuccess``; only an
exception (connection refused, timeout, TLS error) is an ``HttpFailure``.
Connection-level errors are retried ``automatic_retries`` times before they
surface; the number of retries is reported as ``times_retried``.

Example::

    client = ParallelClient(timeout=30)
    client.get(url, params={"format": "json"}, auth=("user", "pw")) \\
        .on_success(handle_ok) \\
        .on_failure(handle_error)
    client.execute()
"""

from __future__ import annotations

import asyncio
import threading
import traceback
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

import httpx

from uptrends_spine.core.logging import get_logger

logger = get_logger(__name__)

RETRYABLE_ERRORS = (httpx.ConnectError, httpx.RemoteProtocolError, httpx.ReadError)


@dataclass(frozen=True)
class HttpSuccess:
    """A response arrived (whatever its status code)."""

    code: int
    headers: dict[str, str]
    message: str
    times_retried: int = 0
    body: bytes | None = None


@dataclass(frozen=True)
class HttpFailure:
    """No response: the exchange raised."""

    error: BaseException
    backtrace: list[str] = field(default_factory=list)

    @classmethod
    def from_exception(cls, error: BaseException) -> HttpFailure:
        return cls(error=error, backtrace=traceback.format_tb(error.__traceback__))

    @property
    def description(self) -> str:
        text = str(self.error)
        return text or self.error.__class__.__name__


Outcome = Union[HttpSuccess, HttpFailure]

SuccessCallback = Callable[[HttpSuccess], Any]
FailureCallback = Callable[[HttpFailure], Any]


class PendingRequest:
    """A queued GET. Register callbacks fluently; nothing is sent until ``execute()``."""

    def __init__(
        self,
        url: str,
        params: Mapping[str, str] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> None:
        self.url = url
        self.params = dict(params or {})
        self.auth = auth
        self._on_success: SuccessCallback | None = None
        self._on_failure: FailureCallback | None = None

    def on_success(self, callback: SuccessCallback) -> PendingRequest:
        self._on_success = callback
        return self

    def on_failure(self, callback: FailureCallback) -> PendingRequest:
        self._on_failure = callback
        return self

    def __repr__(self) -> str:
        return f"PendingRequest({self.url!r})"


class ParallelClient:
    """Batching GET client built on ``httpx.AsyncClient``.

    Parameters
    ----------
    timeout : float
        Per-request timeout in seconds.
    automatic_retries : int
        Retries for connection-level errors before the failure callback fires.
    pool_max : int
        Maximum simultaneous connections within one batch.
    user_agent : str
        ``User-Agent`` header for every request.
    transport : httpx.AsyncBaseTransport | None
        Custom transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        *,
        timeout: float = 60.0,
        automatic_retries: int = 1,
        pool_max: int = 50,
        user_agent: str = "uptrends-spine",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._automatic_retries = automatic_retries
        self._pool_max = pool_max
        self._user_agent = user_agent
        self._transport = transport
        self._pending: list[PendingRequest] = []
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> ParallelClient:
        return cls(
            timeout=settings.request_timeout_seconds,
            automatic_retries=settings.automatic_retries,
            pool_max=settings.pool_max,
            user_agent=settings.user_agent,
            **kwargs,
        )

    # ── Queueing ─────────────────────────────────────────────────────

    def get(
        self,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        auth: tuple[str, str] | None = None,
    ) -> PendingRequest:
        request = PendingRequest(url, params=params, auth=auth)
        with self._lock:
            self._pending.append(request)
        return request

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ── Execution ────────────────────────────────────────────────────

    def execute(self) -> int:
        """Send every queued request concurrently and wait for all callbacks.

        Returns:
            Number of requests executed.
        """
        with self._lock:
            batch, self._pending = self._pending, []

        if not batch:
            return 0

        asyncio.run(self._run_batch(batch))
        return len(batch)

    async def _run_batch(self, batch: list[PendingRequest]) -> None:
        async with httpx.AsyncClient(
            timeout=self._timeout,
            limits=httpx.Limits(max_connections=self._pool_max),
            headers={"User-Agent": self._user_agent},
            transport=self._transport,
        ) as client:
            await asyncio.gather(*(self._run_one(client, request) for request in batch))

    async def _run_one(self, client: httpx.AsyncClient, request: PendingRequest) -> None:
        try:
            response, retried = await self._send(client, request)
        except Exception as e:
            logger.debug("request.failed", url=request.url, error=str(e))
            self._fire(request._on_failure, HttpFailure.from_exception(e), request)
            return

        logger.debug("response.received", url=request.url, code=response.status_code)
        success = HttpSuccess(
            code=response.status_code,
            headers=dict(response.headers),
            message=response.reason_phrase,
            times_retried=retried,
            body=response.content or None,
        )
        self._fire(request._on_success, success, request)

    async def _send(
        self, client: httpx.AsyncClient, request: PendingRequest
    ) -> tuple[httpx.Response, int]:
        # BasicAuth always sends the Authorization header on the first request.
        auth = httpx.BasicAuth(*request.auth) if request.auth else None
        attempt = 0
        while True:
            try:
                response = await client.get(request.url, params=request.params, auth=auth)
                return response, attempt
            except RETRYABLE_ERRORS as e:
                if attempt >= self._automatic_retries:
                    raise
                attempt += 1
                logger.debug("request.retrying", url=request.url, attempt=attempt, error=str(e))

    @staticmethod
    def _fire(callback: Callable[[Any], Any] | None, outcome: Outcome, request: PendingRequest) -> None:
        if callback is None:
            return
        try:
            callback(outcome)
        except Exception:
            logger.exception("client.callback_failed", url=request.url)


__all__ = [
    "HttpSuccess",
    "HttpFailure",
    "Outcome",
    "PendingRequest",
    "ParallelClient",
]
