"""Structured lifecycle events for embedding, caching, storage and retrieval."""

from __future__ import annotations

import logging
import time
import traceback
from contextlib import contextmanager
from typing import Any, Iterator, Optional

LOGGER = logging.getLogger("contrag.telemetry")


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    namespace: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if namespace:
        event["namespace"] = namespace
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_embeddings_event(
    *, provider: str, count: int, duration_ms: float, errors: list[str] | None = None
) -> None:
    details = {
        "provider": provider,
        "count": count,
        "duration_ms": round(duration_ms, 3),
        "errors": errors or [],
        "per_item_ms": round(duration_ms / count, 3) if count else None,
    }
    level = "error" if errors else "info"
    log_event(LOGGER, "embeddings.compute", level=level, details=details)


def emit_cache_event(*, requested: int, hits: int, misses: int, evictions: int) -> None:
    details = {
        "requested": requested,
        "hits": hits,
        "misses": misses,
        "evictions": evictions,
    }
    log_event(LOGGER, "embeddings.cache", level="debug", details=details)


def emit_vectorstore_event(
    step: str,
    *,
    namespace: str,
    count: int,
    dimension: int | None = None,
    error: BaseException | None = None,
) -> None:
    details = {"count": count, "dimension": dimension}
    level = "error" if error else "info"
    log_event(LOGGER, step, level=level, namespace=namespace, details=details, exc=error)


def emit_retriever_event(
    *,
    namespace: str,
    query: str,
    top_k: int,
    results: list[dict[str, Any]],
    duration_ms: float,
) -> None:
    details = {
        "query_preview": query[:120],
        "top_k": top_k,
        "results": results,
    }
    log_event(LOGGER, "retriever.search", namespace=namespace, duration_ms=duration_ms, details=details)


def emit_ingest_event(
    step: str,
    *,
    namespace: str,
    entity_type: str,
    entity_id: str,
    text_length: int | None = None,
    chunks: int | None = None,
    removed: int | None = None,
    duration_ms: float | None = None,
) -> None:
    details = {
        "entity_type": entity_type,
        "entity_id": entity_id,
        "text_length": text_length,
        "chunks": chunks,
        "removed": removed,
    }
    log_event(LOGGER, step, namespace=namespace, duration_ms=duration_ms, details=details)


def emit_exception(
    *,
    module: str,
    error: BaseException,
    namespace: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        namespace=namespace,
        details=details,
        exc=error,
    )


@contextmanager
def traced_step(step: str, *, logger: Optional[logging.Logger] = None, **details: Any) -> Iterator[dict[str, Any]]:
    """Time the enclosed block and log ``<step>.complete`` or ``<step>.error``.

    The yielded dict is logged as the event details, so the block can record
    what it found (sizes, counts) before the event is written.
    """

    started = time.perf_counter()
    try:
        yield details
    except Exception as error:
        log_event(
            logger,
            f"{step}.error",
            level="error",
            duration_ms=(time.perf_counter() - started) * 1000.0,
            details=details,
            exc=error,
        )
        raise
    log_event(logger, f"{step}.complete", duration_ms=(time.perf_counter() - started) * 1000.0, details=details)


__all__ = [
    "emit_cache_event",
    "emit_embeddings_event",
    "emit_exception",
    "emit_ingest_event",
    "emit_retriever_event",
    "emit_vectorstore_event",
    "log_event",
    "traced_step",
]
