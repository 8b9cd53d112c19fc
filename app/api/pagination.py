from collections.abc import Sequence
from typing import Annotated, TypeVar

from fastapi import Query

T = TypeVar("T")

LimitParam = Annotated[int, Query(ge=1, le=100)]
OffsetParam = Annotated[int, Query(ge=0)]


def paginate(items: Sequence[T], limit: int, offset: int) -> tuple[list[T], int]:
    """Slice an already ordered result; returns the page and the unpaged total."""
    return list(items[offset : offset + limit]), len(items)
