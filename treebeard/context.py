from __future__ import annotations

import asyncio
import contextvars
import inspect
import secrets
from contextlib import contextmanager
from dataclasses import dataclass, field, fields
from typing import Any, Awaitable, Callable, Dict, Iterator, Optional, TypeVar, Union

T = TypeVar("T")

_active_context_var: contextvars.ContextVar[Optional["TraceContext"]] = contextvars.ContextVar(
    "treebeard_trace_context", default=None
)


@dataclass(slots=True)
class TraceContext:
    trace_id: str
    span_id: Optional[str] = None
    trace_name: Optional[str] = None
    request_id: Optional[str] = None
    parent_span_id: Optional[str] = None
    # correlation slots such as ``user_id``, copied into every log's props
    attributes: Dict[str, Any] = field(default_factory=dict)

    def child(self, name: Optional[str] = None) -> "TraceContext":
        return TraceContext(
            trace_id=self.trace_id,
            span_id=TreebeardContext.generate_span_id(),
            trace_name=name or self.trace_name,
            request_id=self.request_id,
            parent_span_id=self.span_id,
            attributes=dict(self.attributes),
        )


_CONTEXT_FIELDS = frozenset(f.name for f in fields(TraceContext)) - {"attributes"}


class TreebeardContext:
    """Ambient trace context, scoped per synchronous call or asyncio task tree.

    Backed by a ``ContextVar``: every asyncio task runs in its own copy of the
    context, so concurrent scopes never observe each other.
    """

    @staticmethod
    def run(context: TraceContext, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        with TreebeardContext.scope(context):
            return fn(*args, **kwargs)

    @staticmethod
    async def run_async(
        context: TraceContext,
        fn: Callable[..., Union[Awaitable[T], T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        # Run in a dedicated task with its own context copy. Two run_async
        # calls interleaving on one task must not share the variable.
        scoped = contextvars.copy_context()
        scoped.run(_active_context_var.set, context)
        task = asyncio.create_task(_call(fn, args, kwargs), context=scoped)
        return await task

    @staticmethod
    @contextmanager
    def scope(context: TraceContext) -> Iterator[TraceContext]:
        token = _active_context_var.set(context)
        try:
            yield context
        finally:
            _active_context_var.reset(token)

    @staticmethod
    def bind(fn: Callable[..., T]) -> Callable[..., T]:
        """Capture the current context for a callable handed to a thread or executor."""
        captured = contextvars.copy_context()

        def bound(*args: Any, **kwargs: Any) -> T:
            return captured.copy().run(fn, *args, **kwargs)

        return bound

    @staticmethod
    def get_store() -> Optional[TraceContext]:
        return _active_context_var.get()

    @staticmethod
    def get(key: str, default: Any = None) -> Any:
        store = _active_context_var.get()
        if store is None:
            return default
        if key in _CONTEXT_FIELDS:
            value = getattr(store, key)
            return default if value is None else value
        return store.attributes.get(key, default)

    @staticmethod
    def set(key: str, value: Any) -> bool:
        """Update the active context in place; returns False outside any scope."""
        store = _active_context_var.get()
        if store is None:
            return False
        if key in _CONTEXT_FIELDS:
            setattr(store, key, value)
        else:
            store.attributes[key] = value
        return True

    @staticmethod
    def get_trace_id() -> Optional[str]:
        return TreebeardContext.get("trace_id")

    @staticmethod
    def get_span_id() -> Optional[str]:
        return TreebeardContext.get("span_id")

    @staticmethod
    def generate_trace_id() -> str:
        return secrets.token_hex(16)

    @staticmethod
    def generate_span_id() -> str:
        return secrets.token_hex(8)

    @staticmethod
    def new_context(
        name: Optional[str] = None,
        *,
        trace_id: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> TraceContext:
        return TraceContext(
            trace_id=trace_id or TreebeardContext.generate_trace_id(),
            span_id=TreebeardContext.generate_span_id(),
            trace_name=name,
            request_id=request_id,
        )


async def _call(fn: Callable[..., Any], args: tuple, kwargs: Dict[str, Any]) -> Any:
    result = fn(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result
