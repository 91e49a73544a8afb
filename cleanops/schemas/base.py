"""
Base Schema Classes for Pydantic Models

RULE: All response schemas that read from ORM rows inherit from BaseResponseSchema.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Base class for all response schemas that read from ORM models.

    Usage:
        class BranchResponse(BaseResponseSchema):
            id: UUID
            code: str
            main_store_id: Optional[UUID] = None
    """
    model_config = ConfigDict(
        from_attributes=True,
        # Allow population by field name or alias
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """Base class for create/input schemas. Unknown fields are ignored."""
    model_config = ConfigDict(
        extra='ignore',
    )


class ListResponse(BaseModel):
    """Pagination envelope fields."""
    total: int
    page: int
    size: int
    pages: int
