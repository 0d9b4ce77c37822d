import logging
import re
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from wardrobe.core.logging import latency_bucket_ms, request_id_ctx_var


logger = logging.getLogger("wardrobe.http")

# Client-supplied ids are echoed into headers and logs, so only plain tokens are trusted
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def _resolve_request_id(incoming):
    if incoming and _VALID_REQUEST_ID.match(incoming):
        return incoming
    return uuid4().hex


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Give every request an id, echo it back in a header and log one line per request."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = _resolve_request_id(request.headers.get(self.header_name))
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        started = time.perf_counter()
        fields = {"method": request.method, "path": request.url.path}
        try:
            response = await call_next(request)
        except Exception:
            fields["latency_bucket"] = latency_bucket_ms((time.perf_counter() - started) * 1000)
            logger.exception("request.failed", extra=fields)
            raise
        finally:
            request_id_ctx_var.reset(token)

        response.headers[self.header_name] = rid
        fields["status"] = response.status_code
        fields["latency_bucket"] = latency_bucket_ms((time.perf_counter() - started) * 1000)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, "request.complete", extra={"request_id": rid, **fields})
        return response
