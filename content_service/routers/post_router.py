"""
Post router.

Unfiltered listings in default order come from the collection snapshot;
anything else, or a cold cache, goes to the database.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel

from ..core.auth import require_ctx
from ..core.context import Ctx
from ..dependencies import get_model_manager
from ..domain.entities import Post, PostForCreate, PostForUpdate
from ..repositories import ListOptions, ModelManager, PostBmc
from .list_params import is_plain_listing, list_options, page, parse_filter

router = APIRouter(prefix="/api/v1/posts", tags=["Posts"])


class CreatedResponse(BaseModel):
    id: int


@router.post("", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_post(
    body: PostForCreate,
    ctx: Ctx = Depends(require_ctx),
    mm: ModelManager = Depends(get_model_manager),
):
    return CreatedResponse(id=await PostBmc.create(ctx, mm, body))


@router.get("", response_model=List[Post])
async def list_posts(
    filter: Optional[str] = Query(None, description="JSON filter expression"),
    options: ListOptions = Depends(list_options),
    ctx: Ctx = Depends(require_ctx),
    mm: ModelManager = Depends(get_model_manager),
):
    """List posts, heaviest first unless an order is given."""
    filters = parse_filter(filter)
    if is_plain_listing(filters, options) and mm.cache is not None:
        cached = await mm.cache.get_or_none(PostBmc)
        if cached is not None:
            return page(
                PostBmc.descriptor, cached, options, mm.list_limit_default, mm.list_limit_max
            )
    return await PostBmc.list(ctx, mm, filters, options)


@router.get("/{post_id}", response_model=Post)
async def get_post(
    post_id: int,
    ctx: Ctx = Depends(require_ctx),
    mm: ModelManager = Depends(get_model_manager),
):
    return await PostBmc.get(ctx, mm, post_id)


@router.patch("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_post(
    post_id: int,
    body: PostForUpdate,
    ctx: Ctx = Depends(require_ctx),
    mm: ModelManager = Depends(get_model_manager),
):
    await PostBmc.update(ctx, mm, post_id, body)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post(
    post_id: int,
    ctx: Ctx = Depends(require_ctx),
    mm: ModelManager = Depends(get_model_manager),
):
    """Delete a post. Returns 409 while edit suggestions still reference it."""
    await PostBmc.delete(ctx, mm, post_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
