"""
Outcome mapper — turns one cycle outcome into output records.

Success::

    body non-empty ──► codec.decode(body) ──► one record per payload
    body empty     ──► exactly one empty record

    every record: type label, configured tags, metadata block (if enabled)

Failure::

    one record:
      <metadata_target>     host, url, operation, parameters, runtime_seconds
      http_request_failure  url, error, backtrace, runtime_seconds
      tags                  [_http_request_failure]

``http_request_failure`` is always set even though the metadata block
repeats most of it: metadata is opt-in and a failure should never be
invisible downstream.

Record construction and sink errors are logged and the record is dropped;
they never propagate out of ``emit()``.
"""

from __future__ import annotations

import socket
from collections.abc import Iterable, Iterator
from typing import Any

from uptrends_spine.core.errors import InvalidConfigError
from uptrends_spine.core.logging import get_logger
from uptrends_spine.polling.client import HttpFailure, HttpSuccess
from uptrends_spine.polling.codecs import Codec, Decoded, JsonCodec
from uptrends_spine.polling.dispatch import CycleOutcome
from uptrends_spine.polling.records import OutputRecord
from uptrends_spine.polling.sinks import Sink

logger = get_logger(__name__)

FAILURE_FIELD = "http_request_failure"
FAILURE_TAG = "_http_request_failure"
TYPE_FIELD = "type"


class OutcomeMapper:
    """Maps ``CycleOutcome`` values to records and pushes them to a sink.

    Args:
        sink: Receives records one at a time.
        codec: Decodes successful response bodies.
        target: Field to nest decoded payloads under (None = record root).
        metadata_target: Field for the metadata block (None = no metadata).
        tags: Extra tags for every success-derived record.
        host: Reported as ``host`` in metadata (defaults to this machine).
    """

    def __init__(
        self,
        sink: Sink,
        *,
        codec: Codec | None = None,
        target: str | None = None,
        metadata_target: str | None = None,
        tags: Iterable[str] = (),
        host: str | None = None,
    ) -> None:
        self._sink = sink
        self._codec = codec or JsonCodec()
        self._target = target
        if metadata_target and metadata_target == target:
            raise InvalidConfigError(
                "metadata_target",
                metadata_target,
                f"metadata_target {metadata_target!r} must differ from target",
            )
        self._metadata_target = metadata_target
        self._tags = tuple(tags)
        self._host = host or socket.gethostname()

    # ── Public API ───────────────────────────────────────────────────

    def emit(self, result: CycleOutcome) -> int:
        """Map ``result`` and put every record into the sink.

        Returns:
            Number of records accepted by the sink.
        """
        emitted = 0
        for record in self._safe_records(result):
            try:
                self._sink.put(record)
            except Exception as e:
                logger.error(
                    "outcome.emit_failed",
                    operation=result.name,
                    url=result.url,
                    error=str(e),
                    exc_info=True,
                )
                continue
            emitted += 1
        return emitted

    def to_records(self, result: CycleOutcome) -> list[OutputRecord]:
        """Map ``result`` without emitting. Malformed records are dropped."""
        return list(self._safe_records(result))

    # ── Mapping ──────────────────────────────────────────────────────

    def _safe_records(self, result: CycleOutcome) -> Iterator[OutputRecord]:
        if isinstance(result.outcome, HttpFailure):
            try:
                record = self._failure_record(result, result.outcome)
            except Exception as e:
                logger.error(
                    "outcome.failure_record_failed",
                    operation=result.name,
                    url=result.url,
                    error=str(e),
                    exc_info=True,
                )
                return
            yield record
            return

        response = result.outcome
        try:
            payloads = list(self._decode(response))
        except Exception as e:
            logger.error(
                "outcome.decode_failed",
                operation=result.name,
                url=result.url,
                code=response.code,
                error=str(e),
                exc_info=True,
            )
            return

        for decoded in payloads:
            try:
                record = self._success_record(result, response, decoded)
            except Exception as e:
                logger.error(
                    "outcome.record_failed",
                    operation=result.name,
                    url=result.url,
                    code=response.code,
                    error=str(e),
                    exc_info=True,
                )
                continue
            yield record

    def _decode(self, response: HttpSuccess) -> Iterator[Decoded | None]:
        # An empty body still produces one (empty) record.
        if not response.body:
            yield None
            return
        yield from self._codec.decode(response.body)

    def _success_record(
        self, result: CycleOutcome, response: HttpSuccess, decoded: Decoded | None
    ) -> OutputRecord:
        if decoded is None:
            record = OutputRecord()
        else:
            record = OutputRecord.from_payload(decoded.payload, self._target)
            for label in decoded.tags:
                record.tag(label)

        self._apply_metadata(record, result, response)
        self._decorate(record, result)
        return record

    def _failure_record(self, result: CycleOutcome, failure: HttpFailure) -> OutputRecord:
        record = OutputRecord()
        self._apply_metadata(record, result)
        record.set_field(
            FAILURE_FIELD,
            {
                "url": result.url,
                "error": failure.description,
                "backtrace": list(failure.backtrace),
                "runtime_seconds": result.elapsed,
            },
        )
        record.tag(FAILURE_TAG)
        return record

    def _decorate(self, record: OutputRecord, result: CycleOutcome) -> None:
        op_type = result.operation.type
        if op_type and not record.has_field(TYPE_FIELD):
            record.set_field(TYPE_FIELD, op_type)
        for label in self._tags:
            record.tag(label)

    # ── Metadata ─────────────────────────────────────────────────────

    def _apply_metadata(
        self,
        record: OutputRecord,
        result: CycleOutcome,
        response: HttpSuccess | None = None,
    ) -> None:
        if not self._metadata_target:
            return
        record.set_field(self._metadata_target, self.metadata(result, response))

    def metadata(self, result: CycleOutcome, response: HttpSuccess | None = None) -> dict[str, Any]:
        m: dict[str, Any] = {
            "host": self._host,
            "url": result.url,
            "operation": result.name,
            "parameters": dict(result.request.query) if result.request else {},
            "runtime_seconds": result.elapsed,
        }

        if response is not None:
            m["code"] = response.code
            m["response_headers"] = dict(response.headers)
            m["response_message"] = response.message
            m["times_retried"] = response.times_retried

        return m


__all__ = ["OutcomeMapper", "FAILURE_FIELD", "FAILURE_TAG"]
