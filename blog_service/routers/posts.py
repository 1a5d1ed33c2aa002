from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from blog_service.database import get_db
from blog_service.dependencies import PaginationParams, SessionUser, get_viewer_id, require_login
from blog_service.errors import LoginRequired, ResultCode
from blog_service.queries import PostFilter
from blog_service.schemas import (
    ApiResponse,
    CommentCreate,
    LikeRequest,
    Ok,
    PostCreate,
    PostUpdate,
    failure,
)
from blog_service.services import comment_service, post_service

router = APIRouter(prefix="/api/v1/posts", tags=["posts"])


@router.get("", response_model=ApiResponse)
async def list_posts(
    pagination: PaginationParams = Depends(),
    category_id: int | None = Query(None, ge=1),
    tag_id: int | None = Query(None, ge=1),
    keyword: str | None = Query(None, max_length=100),
    mine: bool = Query(False, description="Only the logged-in user's posts."),
    viewer_id: int | None = Depends(get_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    if mine and viewer_id is None:
        raise LoginRequired()
    post_filter = PostFilter(
        category_id=category_id,
        tag_id=tag_id,
        keyword=keyword or None,
        author_id=viewer_id if mine else None,
    )
    page = await post_service.list_post_page(
        db, post_filter, pagination.page, pagination.page_size, viewer_id=viewer_id
    )
    return Ok(data=page, message="post list")


@router.get("/{post_id}", response_model=ApiResponse)
async def get_post(
    post_id: int,
    response: Response,
    viewer_id: int | None = Depends(get_viewer_id),
    db: AsyncSession = Depends(get_db),
):
    post = await post_service.get_post_detail(db, post_id, viewer_id=viewer_id)
    if post is None:
        return failure(response, 404, ResultCode.ERROR, "post not found")
    return Ok(data=post, message="post detail")


@router.post("", status_code=201, response_model=ApiResponse)
async def create_post(
    data: PostCreate,
    user: SessionUser = Depends(require_login),
    db: AsyncSession = Depends(get_db),
):
    post_id = await post_service.create_post(db, user.id, user.nickname, data)
    return Ok(data={"id": post_id}, message="post created")


@router.put("/{post_id}", response_model=ApiResponse)
async def update_post(
    post_id: int,
    data: PostUpdate,
    response: Response,
    user: SessionUser = Depends(require_login),
    db: AsyncSession = Depends(get_db),
):
    if not await post_service.update_post(db, post_id, user.id, user.nickname, data):
        return failure(response, 404, ResultCode.ERROR, "post not found")
    return Ok(data={"id": post_id}, message="post updated")


@router.delete("/{post_id}", response_model=ApiResponse)
async def delete_post(
    post_id: int,
    response: Response,
    user: SessionUser = Depends(require_login),
    db: AsyncSession = Depends(get_db),
):
    if not await post_service.delete_post(db, post_id, user.id):
        return failure(response, 404, ResultCode.ERROR, "post not found")
    return Ok(message="post deleted")


@router.post("/{post_id}/like", response_model=ApiResponse)
async def like_post(
    post_id: int,
    data: LikeRequest,
    user: SessionUser = Depends(require_login),
    db: AsyncSession = Depends(get_db),
):
    changed = await post_service.toggle_post_like(db, user.id, post_id, data.liked)
    return Ok(data={"changed": changed, "liked": data.liked}, message="like updated")


@router.get("/{post_id}/comments", response_model=ApiResponse)
async def list_comments(
    post_id: int,
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    page = await comment_service.list_comment_page(
        db, post_id, pagination.page, pagination.page_size
    )
    return Ok(data=page, message="comment list")


@router.post("/{post_id}/comments", status_code=201, response_model=ApiResponse)
async def add_comment(
    post_id: int,
    data: CommentCreate,
    response: Response,
    user: SessionUser = Depends(require_login),
    db: AsyncSession = Depends(get_db),
):
    comment_id = await comment_service.add_comment(
        db,
        post_id,
        user.id,
        user.nickname,
        data.content,
        parent_id=data.parent_id,
        parent_grand_id=data.parent_grand_id,
    )
    if comment_id is None:
        return failure(response, 400, ResultCode.INVALID_PARAM, "cannot comment here")
    return Ok(data={"id": comment_id}, message="comment added")
