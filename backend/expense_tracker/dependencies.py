"""
Expense Tracker Backend — FastAPI Dependencies
===============================================

What:  Accessors for the components `create_app()` places on `app.state`,
       and the `require_user` guard for protected routes.
How:   Nothing here reads module globals; every provider looks at the app
       that is serving the request, so tests can run several apps side by side.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile

from expense_tracker.database import get_db_session
from expense_tracker.exceptions import ValidationError
from expense_tracker.services.auth_gate import AuthGate, CurrentUser
from expense_tracker.services.auth_service import AuthService
from expense_tracker.services.expense_service import ExpenseService
from expense_tracker.services.upload_service import ImageUpload


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_expense_service(request: Request) -> ExpenseService:
    return request.app.state.expense_service


def get_auth_gate(request: Request) -> AuthGate:
    return request.app.state.auth_gate


async def require_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    gate: AuthGate = Depends(get_auth_gate),
) -> CurrentUser:
    """
    Authenticate the caller or fail with 401.

    The resolved user is also attached to `request.state.user` so middleware
    and handlers further down can see who is calling.
    """
    user = await gate.authenticate(db, request.headers.get("Authorization"))
    request.state.user = user
    return user


# ── Multipart submissions ─────────────────────────────────────────────────


@dataclass
class Submission:
    """Text fields and image parts of a create/update request."""

    fields: Dict[str, Any] = field(default_factory=dict)
    files: Dict[str, ImageUpload] = field(default_factory=dict)

    def file(self, name: str) -> Optional[ImageUpload]:
        return self.files.get(name)


async def read_submission(request: Request) -> Submission:
    """
    Collect the submitted fields of a multipart, urlencoded or JSON body.

    Only keys present in the body appear in `fields`, and values are passed
    through untouched (an empty string stays an empty string), so schemas can
    tell "cleared" from "not sent". File parts without a filename are ignored.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError(message="Malformed JSON body", field="body")
        if not isinstance(body, dict):
            raise ValidationError(message="Request body must be a JSON object", field="body")
        return Submission(fields=body)

    limit = request.app.state.settings.max_upload_size
    submission = Submission()
    form = await request.form()
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if value.filename:
                # Never buffer more than one byte past the limit.
                if value.size is not None and value.size > limit:
                    content = b""
                else:
                    content = await value.read(limit + 1)
                submission.files[key] = ImageUpload(
                    field=key,
                    filename=value.filename,
                    content=content,
                    content_type=value.content_type,
                    declared_size=value.size,
                )
        else:
            submission.fields[key] = value
    return submission
