"""
Routes des soumissions d'analyse.

- POST /v1/submissions: 202 (en file), 201 (servie depuis le cache), 429 (file pleine)
- GET  /v1/submissions[/{id}[/status|/result]]: lecture par le propriétaire uniquement
"""

from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from content_analyzer.api.deps import get_container, get_current_user
from content_analyzer.api.schemas import (
    AnalysisResponse,
    SubmissionDetailResponse,
    SubmissionListResponse,
    SubmissionRequest,
    SubmissionResponse,
    SubmissionStatusResponse,
)
from content_analyzer.core.container import Container
from content_analyzer.core.http_constants import HTTP_ACCEPTED, HTTP_CREATED
from content_analyzer.domain.entities import SubmissionStatus
from content_analyzer.domain.errors import ResultNotReady

router = APIRouter(prefix="/v1/submissions", tags=["submissions"])


@router.post("", response_model=SubmissionResponse)
def create_submission(
    p: SubmissionRequest,
    user: dict[str, Any] = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    """Soumet un texte à l'analyse."""
    sub = container.orchestrator.submit(p.content, owner_id=user["id"])
    status_code = HTTP_CREATED if sub.status is SubmissionStatus.COMPLETED else HTTP_ACCEPTED
    body = SubmissionResponse.from_submission(sub).model_dump(mode="json")
    return JSONResponse(
        status_code=status_code,
        content=body,
        headers={"Location": f"/v1/submissions/{sub.id}"},
    )


@router.get("", response_model=SubmissionListResponse)
def list_submissions(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: dict[str, Any] = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    items = container.orchestrator.list_submissions(user["id"], limit=limit, offset=offset)
    return SubmissionListResponse(
        items=[SubmissionResponse.from_submission(s) for s in items], limit=limit, offset=offset
    )


@router.get("/{submission_id}", response_model=SubmissionDetailResponse)
def get_submission(
    submission_id: str,
    user: dict[str, Any] = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    sub = container.orchestrator.get_submission(submission_id, user["id"])
    return SubmissionDetailResponse.from_submission(sub)


@router.get("/{submission_id}/status", response_model=SubmissionStatusResponse)
def get_status(
    submission_id: str,
    user: dict[str, Any] = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    status = container.orchestrator.get_status(submission_id, user["id"])
    return SubmissionStatusResponse(id=submission_id, status=status.value)


@router.get("/{submission_id}/result", response_model=AnalysisResponse)
def get_result(
    submission_id: str,
    user: dict[str, Any] = Depends(get_current_user),
    container: Container = Depends(get_container),
):
    """Résultat d'analyse: 200, 202 si pas encore prêt, 404 inconnu, 409 échec."""
    try:
        result = container.orchestrator.get_result(submission_id, user["id"])
    except ResultNotReady as exc:
        return JSONResponse(
            status_code=HTTP_ACCEPTED,
            content={"id": submission_id, "status": exc.status},
            headers={"Retry-After": "2"},
        )
    return AnalysisResponse.from_result(result)
