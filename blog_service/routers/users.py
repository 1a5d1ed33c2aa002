from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from blog_service.cache import CacheManager, UserCache
from blog_service.database import get_db
from blog_service.dependencies import (
    SessionUser,
    get_cache,
    get_code_sender,
    get_user_cache,
    require_login,
)
from blog_service.errors import ResultCode
from blog_service.schemas import (
    ApiResponse,
    LoginRequest,
    Ok,
    RegisterRequest,
    SendCodeRequest,
    failure,
)
from blog_service.services import user_service
from blog_service.services.user_service import CodeSender

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.post("/login", response_model=ApiResponse)
async def login(
    data: LoginRequest,
    request: Request,
    response: Response,
    user_cache: UserCache = Depends(get_user_cache),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.login(db, user_cache, data.email, data.password)
    if user is None:
        return failure(response, 400, ResultCode.INVALID_PARAM, "wrong email or password")
    request.session.update(user_id=user["id"], email=user["email"], nickname=user["nickname"])
    return Ok(data=user, message="logged in")


@router.post("/logout", response_model=ApiResponse)
async def logout(request: Request, user_cache: UserCache = Depends(get_user_cache)):
    user_id = request.session.pop("user_id", None)
    email = request.session.pop("email", None)
    request.session.pop("nickname", None)
    await user_service.logout(user_cache, user_id, email)
    return Ok(message="logged out")


@router.post("/code", response_model=ApiResponse)
async def send_code(
    data: SendCodeRequest,
    response: Response,
    cache: CacheManager = Depends(get_cache),
    sender: CodeSender = Depends(get_code_sender),
):
    if not await user_service.issue_verification_code(cache, data.email, sender):
        return failure(response, 500, ResultCode.SERVER_ERROR, "could not send verification code")
    return Ok(message="verification code sent")


@router.post("/register", status_code=201, response_model=ApiResponse)
async def register(
    data: RegisterRequest,
    response: Response,
    cache: CacheManager = Depends(get_cache),
    user_cache: UserCache = Depends(get_user_cache),
    db: AsyncSession = Depends(get_db),
):
    if data.password != data.confirm_password:
        return failure(response, 400, ResultCode.INVALID_PARAM, "passwords do not match")

    outcome = await user_service.register(
        db, cache, user_cache, data.email, data.password, data.nickname, data.verify_code
    )
    if outcome.user_id is None:
        status = 500 if outcome.code == ResultCode.SERVER_ERROR else 400
        return failure(response, status, outcome.code, outcome.message)
    return Ok(data={"id": outcome.user_id}, message=outcome.message)


@router.get("/me", response_model=ApiResponse)
async def get_me(
    response: Response,
    user: SessionUser = Depends(require_login),
    user_cache: UserCache = Depends(get_user_cache),
    db: AsyncSession = Depends(get_db),
):
    return await _user_or_404(db, user_cache, user.id, response)


@router.get("/{user_id}", response_model=ApiResponse)
async def get_user(
    user_id: int,
    response: Response,
    user: SessionUser = Depends(require_login),
    user_cache: UserCache = Depends(get_user_cache),
    db: AsyncSession = Depends(get_db),
):
    return await _user_or_404(db, user_cache, user_id, response)


async def _user_or_404(db, user_cache, user_id: int, response: Response):
    found = await user_service.lookup_user_by_id(db, user_cache, user_id)
    if found is None:
        return failure(response, 404, ResultCode.INVALID_PARAM, "user not found")
    return Ok(data=found, message="user info")
