"""
api/responses.py -- Success-envelope helpers shared by every v1 router.

Route handlers return ok(...) or paged(...) instead of bare models so every
success response has the same top-level shape. The error side of the envelope
is produced by the exception handlers in api/main.py. page_request() is the
shared Depends() for ?page=&limit= on list endpoints.
"""

from __future__ import annotations

from typing import Any

from fastapi import Query
from pydantic import BaseModel

from core.pagination import MAX_PAGE_SIZE, Page, PageRequest


def ok(data: Any = None, message: str = "OK", status_code: int = 200, meta: dict | None = None) -> dict:
    return {
        "success": True,
        "status_code": status_code,
        "message": message,
        "data": data,
        "meta": meta,
    }


def paged(page: Page, out_model: type[BaseModel], message: str = "OK") -> dict:
    """Map page.items through out_model and attach the pagination meta block."""
    return ok(
        [out_model.model_validate(item) for item in page.items],
        message=message,
        meta=page.meta(),
    )


def out_list(items: list, out_model: type[BaseModel]) -> list:
    return [out_model.model_validate(item) for item in items]


def page_request(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=MAX_PAGE_SIZE),
) -> PageRequest:
    """Depends() helper that reads ?page=&limit= into a PageRequest."""
    return PageRequest(page=page, limit=limit)
