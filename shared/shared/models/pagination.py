import math

from pydantic import BaseModel


class Pagination(BaseModel):
    """Pagination metadata returned next to a page of items."""

    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit))
