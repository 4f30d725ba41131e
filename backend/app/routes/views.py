"""
View counter endpoint.

POST /videos/{content_id}/views   body (optional): {"viewerId": "..."}
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path
from pydantic import BaseModel

from app.core.logging import get_logger
from app.services.views import ViewCounter, ViewCountError, get_view_counter

logger = get_logger(__name__)

router = APIRouter()


class ViewRequest(BaseModel):
    viewerId: Optional[str] = None


@router.post("/{content_id}/views")
async def record_view(
    content_id: str = Path(..., description="Content ID"),
    request: Optional[ViewRequest] = None,
    view_counter: ViewCounter = Depends(get_view_counter),
):
    """
    Count a view. Identified viewers are counted at most once per 30 minutes
    per video; anonymous views always count.
    """
    viewer_id = request.viewerId if request else None
    try:
        counted = await view_counter.record_view(content_id, viewer_id)
    except ViewCountError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return {"success": True, "counted": counted}
