"""
Request correlation middleware.

Every request gets an id (client supplied when it looks sane, generated
otherwise) that is echoed in `x-request-id` and bound to the logging context.
Completion is logged with the acting user and organization so access
denials can be traced per org; 401/402/403/429 log at WARNING.
"""

import logging
import re
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from orgaccess.core.logging import request_id_ctx_var, latency_bucket_ms, LOGGER_NAME

_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")
DENIAL_STATUSES = frozenset({401, 402, 403, 429})


def resolve_request_id(incoming) -> str:
    if incoming and _SAFE_REQUEST_ID.match(incoming):
        return incoming
    return str(uuid4())


class RequestIdMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = resolve_request_id(request.headers.get(self.header_name))
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
        duration_ms = (time.perf_counter() - start) * 1000

        response.headers[self.header_name] = rid

        status = response.status_code
        logging.getLogger(LOGGER_NAME).log(
            logging.WARNING if status in DENIAL_STATUSES else logging.INFO,
            "request.denied" if status in DENIAL_STATUSES else "request.complete",
            extra={
                "request_id": rid,
                "actor_id": getattr(request.state, "actor_id", None),
                "org_id": request.path_params.get("org_id"),
                "path": request.url.path,
                "method": request.method,
                "status": status,
                "latency_bucket": latency_bucket_ms(duration_ms),
            },
        )
        return response
