"""
HTTP routes for the content store.

Handlers only translate between HTTP and the stores; error mapping lives in
``sitecontent.app``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request

from sitecontent.auth import AuthGate
from sitecontent.comments import CommentService
from sitecontent.config import get_settings
from sitecontent.dependencies import (
    get_auth_gate,
    get_comment_service,
    get_document_store,
)
from sitecontent.documents import ContentKeys, DocumentStore
from sitecontent.schemas import (
    BanRequest,
    CommentCreateRequest,
    CommentEditRequest,
    LoginRequest,
    LoginResponse,
    PasswordChangeRequest,
    SuccessResponse,
    VerifyResponse,
    VisitResponse,
)
from sitecontent.visits import client_ip, record_visit

logger = logging.getLogger(__name__)

router = APIRouter()

COLLECTIONS = {
    "blog": ContentKeys.BLOG,
    "portfolio": ContentKeys.PORTFOLIO,
}


async def require_admin(request: Request, auth: AuthGate = Depends(get_auth_gate)) -> str:
    return await auth.require_auth(request)


def _collection_key(collection: str) -> str:
    key = COLLECTIONS.get(collection)
    if key is None:
        raise HTTPException(status_code=404, detail="Unknown collection")
    return key


@router.post("/admin/login", response_model=LoginResponse)
async def login(payload: LoginRequest, auth: AuthGate = Depends(get_auth_gate)):
    if not payload.password:
        raise HTTPException(status_code=400, detail="Password required")
    token = await auth.login(payload.password)
    return LoginResponse(token=token)


@router.get("/admin/verify", response_model=VerifyResponse)
async def verify(request: Request, auth: AuthGate = Depends(get_auth_gate)):
    if not await auth.verify_auth(request):
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    return VerifyResponse(valid=True)


@router.post("/admin/logout", response_model=SuccessResponse)
async def logout(request: Request, auth: AuthGate = Depends(get_auth_gate)):
    await auth.logout(request)
    return SuccessResponse()


@router.put("/admin/password", response_model=SuccessResponse)
async def change_password(
    payload: PasswordChangeRequest,
    _: str = Depends(require_admin),
    auth: AuthGate = Depends(get_auth_gate),
):
    if not payload.current_password or not payload.new_password:
        raise HTTPException(
            status_code=400, detail="Current and new password required"
        )
    await auth.change_password(payload.current_password, payload.new_password)
    return SuccessResponse()


@router.get("/content/{collection}")
async def read_collection(
    collection: str, documents: DocumentStore = Depends(get_document_store)
):
    return await documents.read(_collection_key(collection), [])


@router.put("/content/{collection}", response_model=SuccessResponse)
async def write_collection(
    collection: str,
    document: Any = Body(...),
    _: str = Depends(require_admin),
    documents: DocumentStore = Depends(get_document_store),
):
    await documents.write(_collection_key(collection), document)
    return SuccessResponse()


@router.post("/visit", response_model=VisitResponse)
async def visit(request: Request):
    """
    Record a visit. Always answers ok; a logging failure never fails the request.
    """
    try:
        await record_visit(
            get_document_store(),
            get_settings(),
            client_ip(request.headers),
            request.headers.get("user-agent"),
        )
    except Exception:
        logger.warning("Visit logging failed", exc_info=True)
    return VisitResponse()


@router.get("/visitors")
async def visitors(
    _: str = Depends(require_admin),
    documents: DocumentStore = Depends(get_document_store),
):
    return await documents.read(ContentKeys.VISITORS, [])


# Admin comment routes are registered before ``/comments/{slug}`` so that
# "admin" is never taken for a post slug.
@router.get("/comments/admin/list")
async def comments_overview(
    _: str = Depends(require_admin),
    comments: CommentService = Depends(get_comment_service),
):
    return await comments.overview()


@router.get("/comments/admin/ban")
async def list_bans(
    _: str = Depends(require_admin),
    comments: CommentService = Depends(get_comment_service),
):
    return await comments.list_bans()


@router.post("/comments/admin/ban", status_code=201)
async def ban_ip(
    payload: BanRequest,
    _: str = Depends(require_admin),
    comments: CommentService = Depends(get_comment_service),
):
    return await comments.ban(payload.ip, payload.reason)


@router.delete("/comments/admin/ban", response_model=SuccessResponse)
async def unban_ip(
    payload: BanRequest,
    _: str = Depends(require_admin),
    comments: CommentService = Depends(get_comment_service),
):
    await comments.unban(payload.ip)
    return SuccessResponse()


@router.get("/comments/{slug}")
async def list_comments(
    slug: str, comments: CommentService = Depends(get_comment_service)
):
    return await comments.list_comments(slug)


@router.post("/comments/{slug}", status_code=201)
async def create_comment(
    slug: str,
    payload: CommentCreateRequest,
    request: Request,
    comments: CommentService = Depends(get_comment_service),
):
    return await comments.create(
        slug,
        payload.content,
        payload.author_token,
        client_ip(request.headers),
        author=payload.author,
        parent_id=payload.parent_id,
    )


@router.put("/comments/{slug}/{comment_id}")
async def edit_comment(
    slug: str,
    comment_id: str,
    payload: CommentEditRequest,
    request: Request,
    auth: AuthGate = Depends(get_auth_gate),
    comments: CommentService = Depends(get_comment_service),
):
    return await comments.edit(
        slug,
        comment_id,
        payload.content,
        author_token=payload.author_token,
        is_admin=await auth.verify_auth(request),
    )


@router.delete("/comments/{slug}/{comment_id}", response_model=SuccessResponse)
async def delete_comment(
    slug: str,
    comment_id: str,
    _: str = Depends(require_admin),
    comments: CommentService = Depends(get_comment_service),
):
    await comments.delete(slug, comment_id)
    return SuccessResponse()
