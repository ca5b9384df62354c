"""Structured JSON access log.

Every request logs one line:
{
  correlation_id,
  user_id,
  role,
  path,
  method,
  status_code,
  latency_ms
}
"""
from __future__ import annotations

import json
import logging
import time

import jwt
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger("structured_access")

SLOW_REQUEST_MS = 1000


def _extract_claims(request: Request) -> tuple[str, str]:
    """Read sub/role from the bearer token without verifying it (logging only)."""
    auth = request.headers.get("authorization", "")
    if not auth.lower().startswith("bearer "):
        return "", ""
    token = auth.split(" ", 1)[1]
    try:
        data = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return "", ""
    return str(data.get("sub") or ""), str(data.get("role") or "")


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """Log structured JSON for every request."""

    async def dispatch(self, request: Request, call_next):
        start = time.monotonic()
        user_id, role = _extract_claims(request)

        def _entry(status_code: int) -> str:
            return json.dumps(
                {
                    "correlation_id": getattr(request.state, "correlation_id", ""),
                    "user_id": user_id,
                    "role": role,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": status_code,
                    "latency_ms": round((time.monotonic() - start) * 1000, 2),
                }
            )

        try:
            response = await call_next(request)
        except Exception:
            logger.error(_entry(500))
            raise

        status_code = response.status_code
        if status_code >= 500:
            logger.error(_entry(status_code))
        elif status_code >= 400:
            logger.warning(_entry(status_code))
        else:
            logger.info(_entry(status_code))

        latency_ms = (time.monotonic() - start) * 1000
        if latency_ms > SLOW_REQUEST_MS:
            logger.warning("slow request %s %s took %.0fms", request.method, request.url.path, latency_ms)

        return response
