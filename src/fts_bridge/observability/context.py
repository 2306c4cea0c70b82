"""Per-call context used to correlate log records with boundary operations.

Every public call entering the package through ``errors.boundary`` runs in an
``operation_scope``. Records logged while it runs carry the trace and span
ids, the name of the outermost operation the caller invoked, the kind of
handle it was invoked on, and how deeply boundary calls are nested.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import asdict, dataclass, replace
from uuid import uuid4


@dataclass(frozen=True)
class CallContext:
    trace_id: str
    span_id: str
    operation: str | None = None
    handle: str | None = None
    depth: int = 0
    extra: tuple[tuple[str, object], ...] = ()

    def as_dict(self) -> dict:
        data = asdict(self)
        data.update(data.pop("extra"))
        return data


call_context: ContextVar[CallContext | None] = ContextVar("fts_call_context", default=None)


def generate_trace_id() -> str:
    """Generate a 32-char hex trace ID."""
    return uuid4().hex


def generate_span_id() -> str:
    """Generate a 16-char hex span ID."""
    return uuid4().hex[:16]


def _current() -> CallContext:
    ctx = call_context.get()
    if ctx is None:
        ctx = CallContext(trace_id=generate_trace_id(), span_id=generate_span_id())
        call_context.set(ctx)
    return ctx


def get_trace_context() -> dict:
    """Current context as a dict; ids are generated on first use."""
    return _current().as_dict()


def set_trace_context(
    trace_id: str, span_id: str, operation: str | None = None, handle: str | None = None, **extra: object
) -> None:
    call_context.set(
        CallContext(trace_id, span_id, operation=operation, handle=handle, extra=tuple(sorted(extra.items())))
    )


def update_span_id(span_id: str) -> None:
    """Update span_id while preserving everything else."""
    call_context.set(replace(_current(), span_id=span_id))


@contextmanager
def operation_scope(operation: str, handle: str | None = None) -> Iterator[CallContext]:
    """Mark ``operation`` as running until the block exits.

    Nested scopes keep the outer operation name, so engine log lines from
    inside ``get_mset`` report ``get_mset`` rather than a helper it called.
    """
    outer = _current()
    if outer.depth:
        scoped = replace(outer, depth=outer.depth + 1)
    else:
        scoped = replace(outer, operation=operation, handle=handle, depth=1)
    token = call_context.set(scoped)
    try:
        yield scoped
    finally:
        call_context.reset(token)
