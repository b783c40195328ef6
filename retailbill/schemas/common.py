from typing import List, Optional

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API bodies: snake_case in Python, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class FieldError(CamelModel):
    field: Optional[str] = None
    message: str


class ErrorResponse(CamelModel):
    success: bool = False
    code: str
    message: str
    errors: Optional[List[FieldError]] = None
    details: Optional[dict] = None


class Pagination(CamelModel):
    current_page: int
    total_pages: int
    total_docs: int
    limit: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit if limit else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total_docs=total,
            limit=limit,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )
