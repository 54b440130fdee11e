"""Common Pydantic schemas."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Violation(BaseModel):
    """Validation error violation."""

    path: str = Field(..., description="JSON path to the invalid field")
    message: str = Field(..., description="Validation error message")


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    model_config = ConfigDict(extra="allow")

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    code: Optional[str] = Field(None, description="Application-specific error code")
    retryable: Optional[bool] = Field(None, description="Whether the operation can be retried")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")


def problem_responses(*status_codes: int) -> dict:
    """OpenAPI ``responses`` entries documenting problem bodies for the given statuses."""
    return {
        status: {"model": Problem, "content": {"application/problem+json": {}}}
        for status in status_codes
    }


class Pagination(BaseModel):
    """Page-based pagination metadata."""

    page: int = Field(..., ge=1, description="Current page (1-based)")
    limit: int = Field(..., ge=1, description="Page size")
    total: int = Field(..., ge=0, description="Total matching items")
    total_pages: int = Field(..., ge=0, description="Total number of pages")
