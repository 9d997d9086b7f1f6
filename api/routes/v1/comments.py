"""
api/routes/v1/comments.py -- Task comment endpoints.

Routes:
  GET    /api/v1/tasks/{task_id}/comments   -- oldest first, paginated (read access)
  POST   /api/v1/tasks/{task_id}/comments   -- read access is enough to comment
  GET    /api/v1/comments/{comment_id}
  PATCH  /api/v1/comments/{comment_id}      -- author, or task:update
  DELETE /api/v1/comments/{comment_id}      -- author, or task:delete
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import CommentIn, CommentOut, Envelope
from api.responses import ok, page_request, paged
from auth.dependencies import get_identity
from auth.models import Identity
from core.pagination import PageRequest

router = APIRouter()


@router.get("/tasks/{task_id}/comments", response_model=Envelope[list[CommentOut]])
def list_comments(
    request: Request,
    task_id: int,
    page: PageRequest = Depends(page_request),
    identity: Identity = Depends(get_identity),
) -> dict:
    result = request.app.state.services.comments.list_comments(task_id, identity.user_id, page)
    return paged(result, CommentOut)


@router.post("/tasks/{task_id}/comments", response_model=Envelope[CommentOut], status_code=201)
def create_comment(request: Request, task_id: int, body: CommentIn, identity: Identity = Depends(get_identity)) -> dict:
    comment = request.app.state.services.comments.create_comment(task_id, identity.user_id, body.content)
    return ok(CommentOut.model_validate(comment), message="Comment added.", status_code=201)


@router.get("/comments/{comment_id}", response_model=Envelope[CommentOut])
def get_comment(request: Request, comment_id: int, identity: Identity = Depends(get_identity)) -> dict:
    comment = request.app.state.services.comments.get_comment(comment_id, identity.user_id)
    return ok(CommentOut.model_validate(comment))


@router.patch("/comments/{comment_id}", response_model=Envelope[CommentOut])
def update_comment(
    request: Request, comment_id: int, body: CommentIn, identity: Identity = Depends(get_identity)
) -> dict:
    comment = request.app.state.services.comments.update_comment(comment_id, identity.user_id, body.content)
    return ok(CommentOut.model_validate(comment), message="Comment updated.")


@router.delete("/comments/{comment_id}", response_model=Envelope[None])
def delete_comment(request: Request, comment_id: int, identity: Identity = Depends(get_identity)) -> dict:
    request.app.state.services.comments.delete_comment(comment_id, identity.user_id)
    return ok(message="Comment deleted.")
