"""
Error payload schemas shared by every router.

They only feed the OpenAPI ``responses=`` declarations; the exception
handlers in ``vaultflow.core.exceptions`` build the actual bodies.
"""

from typing import List

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """``{"error": true, "message": ...}``, returned by all non-validation errors."""

    error: bool = Field(default=True, description="Always ``true`` for errors")
    message: str = Field(
        ...,
        description="Human-readable error description",
        examples=["Please connect your wallet first"],
    )


class ValidationErrorDetail(BaseModel):
    field: str = Field(
        ...,
        description="Dot-separated path to the invalid field",
        examples=["body -> vault_address"],
    )
    message: str = Field(
        ...,
        description="Explanation of the validation failure",
        examples=["Value error, vault_address must be a 0x-prefixed 20-byte hex address"],
    )


class ValidationErrorResponse(BaseModel):
    """422 body; ``details`` has one entry per rejected field."""

    error: bool = Field(default=True, description="Always ``true`` for errors")
    message: str = Field(default="Validation failed", description="Summary message")
    details: List[ValidationErrorDetail] = Field(..., description="Per-field validation failures")
