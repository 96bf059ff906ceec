"""
Edit suggestion router.

The editor of a new suggestion is the authenticated author; clients only
send the post and the proposed content.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ..core.auth import require_ctx
from ..core.context import Ctx
from ..dependencies import get_model_manager
from ..domain.entities import (
    EditForCreate,
    EditForCreateRequestBody,
    EditForResult,
    EditForUpdate,
    EditStatus,
)
from ..repositories import EditBmc, ListOptions, ModelManager
from .list_params import list_options
from .post_router import CreatedResponse

router = APIRouter(prefix="/api/v1/edits", tags=["Edits"])


@router.post("", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_edit(
    body: EditForCreateRequestBody,
    ctx: Ctx = Depends(require_ctx),
    mm: ModelManager = Depends(get_model_manager),
):
    """Suggest new content for a post. The suggestion starts PENDING."""
    edit = EditForCreate(post_id=body.post_id, new_content=body.new_content, editor_id=ctx.user_id)
    return CreatedResponse(id=await EditBmc.create(ctx, mm, edit))


@router.get("", response_model=List[EditForResult])
async def list_edits(
    post_id: Optional[int] = Query(None, description="Only suggestions for this post"),
    edit_status: Optional[EditStatus] = Query(None, alias="status"),
    options: ListOptions = Depends(list_options),
    ctx: Ctx = Depends(require_ctx),
    mm: ModelManager = Depends(get_model_manager),
):
    filters = {}
    if post_id is not None:
        filters["post_id"] = post_id
    if edit_status is not None:
        filters["status"] = edit_status
    return await EditBmc.list(ctx, mm, filters or None, options)


@router.get("/{edit_id}", response_model=EditForResult)
async def get_edit(
    edit_id: int,
    ctx: Ctx = Depends(require_ctx),
    mm: ModelManager = Depends(get_model_manager),
):
    return await EditBmc.get(ctx, mm, edit_id)


@router.patch("/{edit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_edit(
    edit_id: int,
    body: EditForUpdate,
    ctx: Ctx = Depends(require_ctx),
    mm: ModelManager = Depends(get_model_manager),
):
    """Change content or review status. Returns 409 once the edit is ACCEPTED or REJECTED."""
    await EditBmc.update(ctx, mm, edit_id, body)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{edit_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_edit(
    edit_id: int,
    ctx: Ctx = Depends(require_ctx),
    mm: ModelManager = Depends(get_model_manager),
):
    await EditBmc.delete(ctx, mm, edit_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
