"""
Author router.

Signup and login issue access tokens; listings are served from the
collection snapshot when possible.
"""

from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr

from ..core.auth import require_ctx
from ..core.context import Ctx
from ..core.security import create_access_token
from ..dependencies import get_model_manager
from ..domain.entities import AuthorForCreate, AuthorForResult
from ..repositories import AuthorBmc, ListOptions, ModelManager
from .list_params import is_plain_listing, list_options, page, parse_filter

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/authors", tags=["Authors"])


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class SignupResponse(TokenResponse):
    author: AuthorForResult


@router.post(
    "/signup",
    response_model=SignupResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new author",
)
async def signup(body: AuthorForCreate, mm: ModelManager = Depends(get_model_manager)):
    """
    Create an author and log them in.

    Returns 409 if the email is already registered.
    """
    ctx = Ctx.root_ctx()
    author_id = await AuthorBmc.create(ctx, mm, body)
    author = await AuthorBmc.get(ctx, mm, author_id)
    logger.info("Author signed up", author_id=author_id)
    return SignupResponse(
        author=AuthorForResult.model_validate(author),
        access_token=create_access_token(author.id, author.email),
    )


@router.post("/login", response_model=TokenResponse, summary="Log in")
async def login(body: LoginRequest, mm: ModelManager = Depends(get_model_manager)):
    author = await AuthorBmc.authenticate(mm, body.email, body.password)
    if author is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return TokenResponse(access_token=create_access_token(author.id, author.email))


@router.get("", response_model=List[AuthorForResult], summary="List authors")
async def list_authors(
    filter: Optional[str] = Query(None, description="JSON filter expression"),
    options: ListOptions = Depends(list_options),
    ctx: Ctx = Depends(require_ctx),
    mm: ModelManager = Depends(get_model_manager),
):
    filters = parse_filter(filter)
    if is_plain_listing(filters, options) and mm.cache is not None:
        cached = await mm.cache.get_or_none(AuthorBmc)
        if cached is not None:
            return page(
                AuthorBmc.descriptor, cached, options, mm.list_limit_default, mm.list_limit_max
            )
    return await AuthorBmc.list(ctx, mm, filters, options)


@router.get("/{author_id}", response_model=AuthorForResult, summary="Get an author")
async def get_author(
    author_id: int,
    ctx: Ctx = Depends(require_ctx),
    mm: ModelManager = Depends(get_model_manager),
):
    return await AuthorBmc.get(ctx, mm, author_id)
