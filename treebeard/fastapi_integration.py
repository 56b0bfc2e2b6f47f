from __future__ import annotations

import logging
import os
from dataclasses import fields
from typing import TYPE_CHECKING, Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from .config import TreebeardConfig
from .context import TreebeardContext

if TYPE_CHECKING:
    from .core import TreebeardCore
    from .exporter import BatchService

__all__ = ["TreebeardMiddleware", "setup_observability"]

logger = logging.getLogger(__name__)

_CONFIG_KEYS = frozenset(f.name for f in fields(TreebeardConfig))


class TreebeardMiddleware(BaseHTTPMiddleware):
    """Runs every request inside its own trace context and trace record."""

    def __init__(self, app, *, core: "TreebeardCore") -> None:
        super().__init__(app)
        self.core = core

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        context = TreebeardContext.new_context(
            f"{request.method} {self._resolve_route(request)}",
            trace_id=request.headers.get("x-trace-id"),
            request_id=request.headers.get("x-request-id"),
        )
        with TreebeardContext.scope(context):
            response = await self._traced(request, call_next)
        response.headers["x-trace-id"] = context.trace_id
        return response

    async def _traced(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        context = TreebeardContext.get_store()
        metadata = {
            "method": request.method,
            "path": request.url.path,
            "user_agent": request.headers.get("user-agent"),
            "client_ip": request.client.host if request.client else None,
        }
        self.core.start_trace(context.trace_id, context.span_id, context.trace_name, metadata)
        try:
            response = await call_next(request)
        except Exception as exc:
            self.core.log_error(f"Unhandled error in {context.trace_name}", exc)
            self.core.complete_trace(context.trace_id, context.span_id, success=False)
            raise

        self.core.complete_trace(
            context.trace_id,
            context.span_id,
            success=response.status_code < 500,
            metadata={"status_code": response.status_code},
        )
        return response

    def _resolve_route(self, request: Request) -> str:
        route = request.scope.get("route")
        if route and hasattr(route, "path"):
            return route.path  # type: ignore[attr-defined]
        return request.url.path


def setup_observability(
    app: FastAPI,
    project_name: Optional[str] = None,
    api_key: Optional[str] = None,
    endpoint: Optional[str] = None,
    enabled: Optional[bool] = None,
    service: Optional["BatchService"] = None,
    **options: Any,
) -> Optional["TreebeardCore"]:
    """
    Set up treebeard for a FastAPI application.

    Initializes the process-wide client, registers the tracing middleware and
    flushes on application shutdown. Parameters left as ``None`` fall back to
    environment variables.

    Args:
        app: The FastAPI application instance
        project_name: Project name (default: TREEBEARD_PROJECT_NAME, fallback to app.title)
        api_key: Ingestion key (default: TREEBEARD_API_KEY)
        endpoint: Ingestion URL (default: TREEBEARD_ENDPOINT)
        enabled: Whether to enable treebeard (default: TREEBEARD_ENABLED, default True)
        service: Ingestion client override, mainly for tests
        **options: Further TreebeardConfig fields; unrecognized keys are dropped with a warning

    Returns:
        TreebeardCore instance if enabled, None otherwise
    """
    from .core import TreebeardCore

    if enabled is None:
        enabled = os.environ.get("TREEBEARD_ENABLED", "true").lower() == "true"

    if not enabled:
        return None

    final_project_name = project_name or os.environ.get("TREEBEARD_PROJECT_NAME")
    if not final_project_name and getattr(app, "title", None):
        final_project_name = app.title.lower().replace(" ", "_")

    config_options: Dict[str, Any] = {}
    for key, value in options.items():
        if key in _CONFIG_KEYS:
            config_options[key] = value
        else:
            logger.warning("ignoring unrecognized treebeard option %r", key)

    core = TreebeardCore.init(
        project_name=final_project_name or "fastapi_app",
        api_key=api_key,
        endpoint=endpoint,
        service=service,
        **config_options,
    )
    app.add_middleware(TreebeardMiddleware, core=core)

    @app.on_event("shutdown")
    async def shutdown_treebeard():
        core.shutdown()

    return core
