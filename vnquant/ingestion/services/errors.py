from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    MALFORMED_INPUT = "malformed_input"
    PROVIDER = "provider"
    STORE = "store"
    BATCH_FAILED = "batch_failed"
    CHUNKS_FAILED = "chunks_failed"


class IngestionError(Exception):
    """
    Error raised by the ingestion pipeline.

    ``kind`` tags the failure class, ``cause`` keeps the underlying exception and
    ``context`` accumulates identifiers (chunk, attempt, symbol, exchange) as the
    error travels up through the layers.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        cause: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.cause = cause
        self.context = dict(context or {})
        if cause is not None:
            self.__cause__ = cause

    @property
    def retryable(self) -> bool:
        return self.kind is not ErrorKind.MALFORMED_INPUT

    def with_context(self, **context: Any) -> IngestionError:
        merged = {**context, **self.context}
        enriched = type(self)(self.message, self.kind, cause=self.cause, context=merged)
        for name, value in vars(self).items():
            if name not in vars(enriched):
                setattr(enriched, name, value)
        return enriched

    def __str__(self) -> str:
        parts = [self.message]
        if self.context:
            rendered = ", ".join(f"{k}={v}" for k, v in sorted(self.context.items()))
            parts.append(f"[{rendered}]")
        if self.cause is not None and str(self.cause) not in self.message:
            parts.append(f"caused by {type(self.cause).__name__}: {self.cause}")
        return " ".join(parts)


def malformed(message: str, **context: Any) -> IngestionError:
    return IngestionError(message, ErrorKind.MALFORMED_INPUT, context=context)


def wrap(
    exc: BaseException,
    kind: ErrorKind,
    message: str | None = None,
    **context: Any,
) -> IngestionError:
    """Return ``exc`` enriched with context, wrapping foreign exceptions."""
    if isinstance(exc, IngestionError):
        return exc.with_context(**context)
    return IngestionError(
        message or str(exc) or type(exc).__name__,
        kind,
        cause=exc,
        context=context,
    )
