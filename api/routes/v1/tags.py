"""
api/routes/v1/tags.py -- Tag management.

Routes:
  GET    /api/v1/tags          -- the caller's tags (?counts=true adds pin_count)
  POST   /api/v1/tags          -- create
  POST   /api/v1/tags/merge    -- fold source tags into a target tag
  DELETE /api/v1/tags/unused   -- delete tags no pin uses
  DELETE /api/v1/tags/{id}     -- delete one tag (its pins keep existing)

/tags/unused is registered before /tags/{id} so the literal path wins.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import CountResponse, TagCreate, TagMergeRequest, TagResponse
from auth.access import AccessControl
from auth.dependencies import get_authenticated_access
from pins.service import TagService

router = APIRouter()


def _tags(request: Request) -> TagService:
    return request.app.state.tag_service


@router.get("/tags", response_model=list[TagResponse])
def list_tags(
    request: Request,
    counts: bool = False,
    ac: AccessControl = Depends(get_authenticated_access),
) -> list[TagResponse]:
    service = _tags(request)
    user_id = ac.principal.id
    tags = service.list_tags_with_counts(ac, user_id) if counts else service.list_tags(ac, user_id)
    return [TagResponse.from_tag(t) for t in tags]


@router.post("/tags", response_model=TagResponse, status_code=201)
def create_tag(
    request: Request,
    body: TagCreate,
    ac: AccessControl = Depends(get_authenticated_access),
) -> TagResponse:
    return TagResponse.from_tag(_tags(request).create_tag(ac, ac.principal.id, body.name))


@router.post("/tags/merge", response_model=CountResponse)
def merge_tags(
    request: Request,
    body: TagMergeRequest,
    ac: AccessControl = Depends(get_authenticated_access),
) -> CountResponse:
    return CountResponse(count=_tags(request).merge_tags(ac, body.source_tag_ids, body.target_tag_id))


@router.delete("/tags/unused", response_model=CountResponse)
def delete_unused_tags(
    request: Request,
    ac: AccessControl = Depends(get_authenticated_access),
) -> CountResponse:
    return CountResponse(count=_tags(request).delete_unused_tags(ac, ac.principal.id))


@router.delete("/tags/{tag_id}", status_code=204)
def delete_tag(
    request: Request,
    tag_id: str,
    ac: AccessControl = Depends(get_authenticated_access),
) -> Response:
    _tags(request).delete_tag(ac, tag_id)
    return Response(status_code=204)
