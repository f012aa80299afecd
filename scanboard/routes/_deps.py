from __future__ import annotations

import logging
import uuid

from fastapi import Request
from fastapi.responses import JSONResponse

from scanboard.schemas import error_envelope
from scanboard.security import redact_sensitive

logger = logging.getLogger(__name__)


def trace_id_from_request(request: Request) -> str:
    trace_id = getattr(request.state, "trace_id", None)
    if trace_id:
        return trace_id
    return uuid.uuid4().hex


def request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    return f"req_{uuid.uuid4().hex[:12]}"


def error_response(
    request: Request,
    *,
    code: str,
    message: str,
    retryable: bool,
    status_code: int,
) -> JSONResponse:
    response = JSONResponse(
        status_code=status_code,
        content=error_envelope(
            code=code,
            message=message,
            retryable=retryable,
            trace_id=trace_id_from_request(request),
        ),
    )
    response.headers["x-trace-id"] = trace_id_from_request(request)
    response.headers["x-request-id"] = request_id_from_request(request)
    return response


def log_security_block(*, request: Request, code: str, detail: str) -> None:
    logger.warning(
        "security_blocked code=%s path=%s trace_id=%s detail=%s headers=%s",
        code,
        request.url.path,
        trace_id_from_request(request),
        detail,
        redact_sensitive(dict(request.headers.items())),
    )
