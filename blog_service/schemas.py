from typing import Annotated, Any, Literal

from fastapi import Response
from pydantic import BaseModel, Field

from blog_service.errors import ResultCode


# --- Response envelope ---

class Ok(BaseModel):
    ok: Literal[True] = True
    code: int = ResultCode.SUCCESS
    message: str = ""
    data: Any = None


class Err(BaseModel):
    ok: Literal[False] = False
    code: int = ResultCode.ERROR
    message: str = "operation failed"


ApiResponse = Annotated[Ok | Err, Field(discriminator="ok")]


def failure(response: Response, status_code: int, code: ResultCode, message: str) -> Err:
    """Set the HTTP status on *response* and build the matching ``Err``."""
    response.status_code = status_code
    return Err(code=code, message=message)


# --- Post ---

class PostBase(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    category_id: int = Field(ge=1)
    category_name: str = Field(min_length=1, max_length=100)
    content: str = Field(min_length=1)
    tags: list[int] = Field(min_length=1)  # tag ids


class PostCreate(PostBase):
    pass


class PostUpdate(PostBase):
    """Edits replace title, category, content and the whole tag set."""


class LikeRequest(BaseModel):
    liked: bool = True


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    parent_id: int | None = None
    parent_grand_id: int | None = None


# --- User ---

class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)


class SendCodeRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)


class RegisterRequest(BaseModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1)
    confirm_password: str = Field(min_length=1)
    nickname: str = Field(min_length=1, max_length=100)
    verify_code: str = Field(min_length=1)
