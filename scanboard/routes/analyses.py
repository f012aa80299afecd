from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Header, Request
from starlette.concurrency import run_in_threadpool

from scanboard.analysis_logs import parse_logs
from scanboard.errors import NotFoundError
from scanboard.routes._deps import trace_id_from_request
from scanboard.schemas import success_envelope

router = APIRouter(prefix="/api/analyses", tags=["analyses"])

STATUS_READ_FIELDS: tuple[str, ...] = (
    "status",
    "staticAnalysisReport",
    "penetrationTestReport",
    "completedAt",
    "vulnerabilitiesFound",
    "criticalCount",
    "highCount",
    "mediumCount",
    "lowCount",
)


def analysis_view(analysis: dict[str, Any]) -> dict[str, Any]:
    view: dict[str, Any] = {"id": analysis.get("id")}
    for field in STATUS_READ_FIELDS:
        view[field] = analysis.get(field)
    view["logs"] = parse_logs(analysis.get("logs"))
    return view


async def _json_object(request: Request) -> dict[str, Any]:
    """Request body as a JSON object; anything else reads as empty."""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


@router.post("/webhook")
async def ingest_webhook(
    request: Request,
    x_api_key: str | None = Header(default=None, alias="x-api-key"),
):
    payload = await _json_object(request)
    outcome = await run_in_threadpool(request.app.state.webhook_handler.handle, payload, x_api_key)
    if outcome.error is not None:
        raise outcome.error
    return success_envelope(outcome.data, trace_id_from_request(request))


@router.get("/{analysis_id}")
def read_analysis(analysis_id: str, request: Request):
    analysis = request.app.state.repository.find_by_id(analysis_id=analysis_id)
    if analysis is None:
        raise NotFoundError()
    return success_envelope(analysis_view(analysis), trace_id_from_request(request))
