"""Per-request console context and access logging."""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from modconsole.core.config import settings

logger = logging.getLogger("modconsole.access")

USER_AGENT_MAX = 500


@dataclass(frozen=True)
class RequestContext:
    """Who is calling from where; copied into audit entries by the routers."""
    request_id: str
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    community_id: Optional[str] = None


def build_request_context(request: Request) -> RequestContext:
    request_id = request.headers.get("x-request-id", "")[:64] or uuid.uuid4().hex
    return RequestContext(
        request_id=request_id,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent", "")[:USER_AGENT_MAX] or None,
        community_id=request.headers.get("x-community-id") or None,
    )


def request_context(request: Request) -> RequestContext:
    """The context the middleware attached, built on demand outside it."""
    context = getattr(request.state, "context", None)
    if context is None:
        context = build_request_context(request)
        request.state.context = context
    return context


class RequestContextMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next):
        context = request_context(request)
        started = time.monotonic()

        response: Response = await call_next(request)

        elapsed_ms = round((time.monotonic() - started) * 1000, 2)
        response.headers["X-Request-Id"] = context.request_id
        logger.info(
            "%s %s %s %sms request=%s community=%s ip=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            context.request_id,
            context.community_id or "-",
            context.ip or "-",
        )
        return response


def setup_middleware(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id", "Retry-After"],
    )
    app.add_middleware(RequestContextMiddleware)
