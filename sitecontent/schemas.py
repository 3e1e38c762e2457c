"""
Pydantic schemas for the HTTP surface.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    password: Optional[str] = None


class LoginResponse(BaseModel):
    token: str


class VerifyResponse(BaseModel):
    valid: bool


class SuccessResponse(BaseModel):
    success: bool = True


class PasswordChangeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: Optional[str] = Field(default=None, alias="currentPassword")
    new_password: Optional[str] = Field(default=None, alias="newPassword")


class VisitResponse(BaseModel):
    ok: bool = True



class CommentCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: Optional[str] = None
    author: Optional[str] = None
    author_token: Optional[str] = Field(default=None, alias="authorToken")
    parent_id: Optional[str] = Field(default=None, alias="parentId")


class CommentEditRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content: Optional[str] = None
    author_token: Optional[str] = Field(default=None, alias="authorToken")


class BanRequest(BaseModel):
    ip: Optional[str] = None
    reason: Optional[str] = None
