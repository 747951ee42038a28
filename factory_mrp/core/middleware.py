from __future__ import annotations
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from factory_mrp.core.context import set_request_id, reset_request_id

class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds X-Request-Id (or a fresh uuid) for logging and audit rows."""

    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-Id") or request.headers.get("x-request-id") or str(uuid.uuid4())
        token = set_request_id(rid)
        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)
        response.headers["X-Request-Id"] = rid
        return response
