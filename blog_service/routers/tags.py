from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from blog_service.database import get_db
from blog_service.schemas import ApiResponse, Ok
from blog_service.services import post_service

router = APIRouter(prefix="/api/v1/tags", tags=["tags"])


@router.get("", response_model=ApiResponse)
async def list_tags(
    with_counts: bool = Query(False, description="Include per-tag post counts."),
    db: AsyncSession = Depends(get_db),
):
    if with_counts:
        tags = await post_service.list_tags_with_counts(db)
    else:
        tags = await post_service.list_tags(db)
    return Ok(data=tags, message="tag list")
