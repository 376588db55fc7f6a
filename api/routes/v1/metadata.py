"""
api/routes/v1/metadata.py -- Fetch a page's title and description for the pin form.

  GET /api/v1/metadata?url=...   (requires auth, rate-limited)

The fetch is a blocking HTTP call, so the handler is a plain `def` and runs
on FastAPI's thread pool. URL safety (scheme, private addresses) is enforced
by core.fetcher before any connection is made.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from api.limiter import limiter, metadata_limit
from api.models import MetadataResponse
from auth.access import Principal
from auth.dependencies import get_current_principal
from core.metadata import fetch_metadata

router = APIRouter()


@limiter.limit(metadata_limit)
@router.get("/metadata", response_model=MetadataResponse)
def get_metadata(
    request: Request,
    url: str = Query(min_length=1, max_length=2048),
    principal: Principal = Depends(get_current_principal),
) -> MetadataResponse:
    meta = fetch_metadata(url, timeout=request.app.state.settings.metadata_fetch_timeout)
    return MetadataResponse(url=url, title=meta.get("title"), description=meta.get("description"))
