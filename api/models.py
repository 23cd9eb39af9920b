"""
API envelope models for Tokengate REST endpoints.

The auth request/response records live in auth/schemas.py because AuthService
consumes and produces them directly. This module only owns what is specific
to the HTTP layer: the error envelope every 4xx/5xx uses and the health body.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    errors carries the field-level list for validation_failed and is omitted
    otherwise.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    errors: Optional[list[dict]] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
