"""
Expense Tracker Backend — Response Envelope Schemas
====================================================

What:  The uniform response shape shared by every endpoint.
How:   Success bodies are `ApiResponse[T]` ({success, message, data}); error
       bodies are `ErrorResponse` ({success: false, message, errors?}).

Example:
    {"success": true, "message": "Expense created successfully", "data": {...}}
    {"success": false, "message": "Validation failed",
     "errors": [{"field": "amount", "message": "..."}]}
"""

from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from expense_tracker.exceptions import ValidationError, field_errors_from_pydantic

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope."""

    success: bool = Field(default=True)
    message: str = Field(default="Success", description="Human-readable outcome")
    data: Optional[T] = Field(default=None)


class FieldErrorItem(BaseModel):
    field: str = Field(description="Name of the offending input field")
    message: str = Field(description="What is wrong with it")


class ErrorResponse(BaseModel):
    """
    Error envelope.

    `errors` is present only for validation failures and lists every failing
    field. `stack` is present only outside production, on 500 responses.
    """

    success: bool = Field(default=False)
    message: str = Field(description="Human-readable error description")
    errors: Optional[List[FieldErrorItem]] = Field(default=None)
    stack: Optional[str] = Field(default=None)


class HealthData(BaseModel):
    status: str = Field(description="Overall service status: healthy or unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")


def validate_payload(model: Type[M], data: Dict[str, Any]) -> M:
    """
    Validate a dict of submitted fields against `model`.

    Used for multipart/form endpoints, where fields arrive as loose strings.
    Only keys present in `data` count as supplied, so `model_fields_set`
    reflects exactly what the client sent. Every failing field is reported.
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(errors=field_errors_from_pydantic(e.errors()))
