from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from scanboard.config import Settings
from scanboard.errors import ApiError
from scanboard.repositories import create_analyses_repository_from_env
from scanboard.routes import analyses
from scanboard.routes._deps import (
    error_response,
    log_security_block,
    request_id_from_request,
    trace_id_from_request,
)
from scanboard.schemas import success_envelope
from scanboard.webhook import AnalysesRepository, WebhookIngestionHandler

logger = logging.getLogger(__name__)

analyses_repository = create_analyses_repository_from_env()


def create_app(
    *,
    settings: Settings | None = None,
    repository: AnalysesRepository | None = None,
) -> FastAPI:
    cfg = settings or Settings.from_env()
    repo = repository if repository is not None else analyses_repository
    if not cfg.analysis_api_key:
        logger.warning("ANALYSIS_API_KEY is not set; all webhook calls will be rejected")

    app = FastAPI(title="Scanboard Analysis Sync API", version="0.1.0")
    app.state.settings = cfg
    app.state.repository = repo
    app.state.webhook_handler = WebhookIngestionHandler(repo, api_key=cfg.analysis_api_key)

    if cfg.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cfg.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def add_trace_id(request: Request, call_next):
        incoming_trace_id = request.headers.get("x-trace-id", "").strip()
        request.state.trace_id = incoming_trace_id or uuid.uuid4().hex
        request.state.request_id = request.headers.get("x-request-id", f"req_{uuid.uuid4().hex[:12]}")
        response = await call_next(request)
        response.headers["x-trace-id"] = trace_id_from_request(request)
        response.headers["x-request-id"] = request_id_from_request(request)
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        if exc.http_status in {401, 403}:
            log_security_block(request=request, code=exc.code, detail=exc.message)
        return error_response(
            request,
            code=exc.code,
            message=exc.message,
            retryable=exc.retryable,
            status_code=exc.http_status,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return error_response(
            request,
            code="REQ_VALIDATION_FAILED",
            message="invalid payload",
            retryable=False,
            status_code=400,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(
                request,
                code="REQ_NOT_FOUND",
                message="resource not found",
                retryable=False,
                status_code=404,
            )
        return error_response(
            request,
            code="REQ_HTTP_ERROR",
            message=str(exc.detail),
            retryable=False,
            status_code=exc.status_code,
        )

    @app.get("/healthz")
    def healthz(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, trace_id_from_request(request))

    app.include_router(analyses.router)
    return app
