import math
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class Pagination(BaseModel):
    page: int = 1
    limit: int = 20
    offset: int = 0

    @classmethod
    def create(cls, page: int, limit: int) -> "Pagination":
        return cls(page=page, limit=limit, offset=(page - 1) * limit)


class PageInfo(BaseModel):
    """Pagination metadata returned alongside list results"""
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PageInfo":
        total_pages = math.ceil(total / limit) if limit > 0 else 0
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


class Aggregation(BaseModel):
    function: str = Field(description="count, sum, avg, min or max")
    field: str
    alias: Optional[str] = None


class ListResponse(BaseModel):
    items: List[Dict[str, Any]] = Field(default_factory=list)
    pagination: PageInfo
