"""
api/routes/v1/pins.py -- Pin CRUD and listing.

Routes:
  GET    /api/v1/pins          -- paginated list (?tag=&read_later=&search=&page=&page_size=)
  POST   /api/v1/pins          -- create
  GET    /api/v1/pins/{id}     -- one pin
  PATCH  /api/v1/pins/{id}     -- partial update
  DELETE /api/v1/pins/{id}     -- delete

Every route requires authentication. Ownership is decided by PinService via
the AccessControl gate; a pin owned by someone else answers 404, the same as
a pin that does not exist.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import PaginationMeta, PinCreate, PinListResponse, PinPatch, PinResponse
from auth.access import AccessControl
from auth.dependencies import get_authenticated_access
from core.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from pins.models import PinFilter
from pins.service import PinService

router = APIRouter()


def _pins(request: Request) -> PinService:
    return request.app.state.pin_service


@router.get("/pins", response_model=PinListResponse)
def list_pins(
    request: Request,
    tag: Optional[str] = None,
    read_later: Optional[bool] = None,
    search: Optional[str] = Query(default=None, max_length=200),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    ac: AccessControl = Depends(get_authenticated_access),
) -> PinListResponse:
    pin_filter = PinFilter(tag=tag or None, read_later=read_later, search=search or None)
    pins, pagination, total = _pins(request).list_pins(ac, pin_filter, page=page, page_size=page_size)
    return PinListResponse(
        items=[PinResponse.from_pin(p) for p in pins],
        pagination=PaginationMeta.from_pagination(pagination, total),
    )


@router.post("/pins", response_model=PinResponse, status_code=201)
def create_pin(
    request: Request,
    body: PinCreate,
    ac: AccessControl = Depends(get_authenticated_access),
) -> PinResponse:
    pin = _pins(request).create_pin(
        ac,
        ac.principal.id,
        url=body.url,
        title=body.title,
        description=body.description or None,
        read_later=body.read_later,
        tag_names=body.tag_names,
    )
    return PinResponse.from_pin(pin)


@router.get("/pins/{pin_id}", response_model=PinResponse)
def get_pin(
    request: Request,
    pin_id: str,
    ac: AccessControl = Depends(get_authenticated_access),
) -> PinResponse:
    return PinResponse.from_pin(_pins(request).get_pin(ac, pin_id))


@router.patch("/pins/{pin_id}", response_model=PinResponse)
def update_pin(
    request: Request,
    pin_id: str,
    body: PinPatch,
    ac: AccessControl = Depends(get_authenticated_access),
) -> PinResponse:
    # exclude_unset separates "description": null (clear) from an omitted field.
    changes = body.model_dump(exclude_unset=True)
    for key in ("url", "title", "read_later", "tag_names"):
        if key in changes and changes[key] is None:
            del changes[key]
    if "description" in changes and not changes["description"]:
        changes["description"] = None
    return PinResponse.from_pin(_pins(request).update_pin(ac, pin_id, **changes))


@router.delete("/pins/{pin_id}", status_code=204)
def delete_pin(
    request: Request,
    pin_id: str,
    ac: AccessControl = Depends(get_authenticated_access),
) -> Response:
    _pins(request).delete_pin(ac, pin_id)
    return Response(status_code=204)
