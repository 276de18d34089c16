"""Pagination helpers."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


class Page(BaseModel, Generic[T]):
    items: list[T]
    limit: int
    offset: int


def paginate(limit: int = DEFAULT_LIMIT, offset: int = 0, max_limit: int = MAX_LIMIT) -> tuple[int, int]:
    """Clamp out-of-range values instead of rejecting them; return (limit, offset)."""
    return max(1, min(limit, max_limit)), max(0, offset)
