"""
Shared Pydantic v2 building blocks for the API schemas.

Every response is wrapped in the same envelope::

    {"success": true, "message": "...", "data": {...}}

Errors use the same envelope with ``success: false``, a ``code`` and an
optional ``errors`` list (see ``tradiehub.core.errors``).

Field names are camelCase on the wire via ``alias_generator`` together with
``populate_by_name=True``, so both snake_case and camelCase are accepted for
construction.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")


def _to_camel(name: str) -> str:
    """Convert a snake_case string to camelCase."""
    parts = name.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=_to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class FieldErrorOut(CamelModel):
    field: str
    message: str


class ApiResponse(CamelModel, Generic[T]):
    """Standard success envelope."""

    success: bool = True
    message: str = "OK"
    data: Optional[T] = None


class ErrorResponse(CamelModel):
    success: bool = False
    message: str
    code: str
    errors: Optional[list[FieldErrorOut]] = None


class PaginationMeta(CamelModel):
    """Pagination metadata included in every paginated response."""

    page: int = Field(ge=1, description="Current page number (1-indexed)")
    page_size: int = Field(ge=1, description="Number of items per page")
    total_items: int = Field(ge=0, description="Total number of matching items")
    total_pages: int = Field(ge=0, description="Total number of pages")


class Page(CamelModel, Generic[T]):
    items: list[T]
    meta: PaginationMeta


def build_page(result, item_model) -> dict:
    """Turn a ``PaginatedResult`` into the ``Page`` payload."""
    return {
        "items": [item_model.model_validate(item) for item in result.items],
        "meta": PaginationMeta(
            page=result.page,
            page_size=result.page_size,
            total_items=result.total_items,
            total_pages=result.total_pages,
        ),
    }
