"""
Expense Tracker Backend — Image Upload Staging
===============================================

What:  Validates uploaded images, stages them to a temporary file and hands
       them to the asset store.
How:   Validation runs cheapest-first, then the bytes are written with
       aiofiles to a uniquely named temp file that is removed on every exit
       path.
Who:   Called by AuthService (avatars) and ExpenseService (receipts).

Validation order:
    1. Extension check   .jpg .jpeg .png .gif .webp
    2. Size check        non-empty, at most MAX_UPLOAD_SIZE bytes
    3. Content check     Pillow must recognize the bytes as an image of an
                         allowed format (catches renamed non-image files)

Temp file names are a random UUID plus the validated extension; no part of
the client-supplied filename reaches the filesystem.
"""

import io
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import aiofiles
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from expense_tracker.exceptions import DependencyError, ValidationError
from expense_tracker.schemas.changes import AssetRef
from expense_tracker.schemas.common import validate_payload
from expense_tracker.services.asset_store import AssetStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}

# Pillow format names accepted for the extensions above
ALLOWED_IMAGE_FORMATS = {"JPEG", "PNG", "GIF", "WEBP", "MPO"}

AVATARS = "avatars"
RECEIPTS = "receipts"


@dataclass(frozen=True)
class ImageUpload:
    """An uploaded file as received from the client (multipart part)."""

    field: str
    filename: str
    content: bytes
    content_type: Optional[str] = None
    # Size reported by the multipart parser; content may be truncated past the limit.
    declared_size: Optional[int] = None


class UploadService:
    def __init__(
        self,
        asset_store: AssetStore,
        root_folder: str,
        max_upload_size: int,
        temp_dir: Optional[str] = None,
    ):
        self.asset_store = asset_store
        self.root_folder = root_folder.strip("/")
        self.max_upload_size = max_upload_size
        self.temp_dir = Path(temp_dir or tempfile.gettempdir())

    # ── Validation ────────────────────────────────────────────────────────

    def validate_extension(self, upload: ImageUpload) -> str:
        ext = Path(upload.filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    "Only image files are allowed "
                    f"({', '.join(sorted(ALLOWED_EXTENSIONS))})"
                ),
                field=upload.field,
                context={"extension": ext},
            )
        return ext

    def validate_size(self, upload: ImageUpload) -> None:
        max_mb = self.max_upload_size / (1024 * 1024)
        if upload.declared_size and upload.declared_size > self.max_upload_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB",
                field=upload.field,
                context={"reported_size": upload.declared_size},
            )

        size = len(upload.content)
        if size == 0:
            raise ValidationError(message="Uploaded file is empty", field=upload.field)
        if size > self.max_upload_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB",
                field=upload.field,
                context={"actual_size": size},
            )

    def validate_image_content(self, upload: ImageUpload) -> str:
        """Returns the Pillow format name of the decoded image."""
        try:
            with Image.open(io.BytesIO(upload.content)) as image:
                image.verify()
                image_format = image.format
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
            image_format = None

        if image_format not in ALLOWED_IMAGE_FORMATS:
            raise ValidationError(
                message="Uploaded file is not a valid image",
                field=upload.field,
                context={"detected_format": image_format},
            )
        return image_format

    def validate(self, upload: ImageUpload) -> str:
        """Run every check; returns the normalized extension."""
        ext = self.validate_extension(upload)
        self.validate_size(upload)
        self.validate_image_content(upload)
        return ext

    def validate_form(
        self,
        model: Type[M],
        fields: Dict[str, Any],
        upload: Optional[ImageUpload] = None,
    ) -> M:
        """
        Validate a multipart submission: its form fields against `model` and
        its optional image part. Errors from both are reported together.
        """
        errors: List[Dict[str, str]] = []
        payload = None
        try:
            payload = validate_payload(model, fields)
        except ValidationError as e:
            errors.extend(e.errors)
        if upload is not None:
            try:
                self.validate(upload)
            except ValidationError as e:
                errors.extend(e.errors)
        if errors:
            raise ValidationError(errors=errors)
        return payload

    # ── Staging and upload ────────────────────────────────────────────────

    async def _stage(self, path: Path, content: bytes) -> None:
        async with aiofiles.open(path, "wb") as f:
            await f.write(content)

    async def _remove(self, path: Path) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove temp file %s: %s", path.name, str(e))

    async def upload_image(self, upload: ImageUpload, kind: str) -> AssetRef:
        """
        Validate, stage and upload one image into `<root>/<kind>`.

        Raises:
            ValidationError: The file is not an acceptable image (→ 400)
            DependencyError: The asset store failed (→ 500)
        """
        ext = self.validate(upload)
        folder = f"{self.root_folder}/{kind}"

        path = self.temp_dir / f"{upload.field}-{uuid.uuid4().hex}{ext}"
        try:
            try:
                await self._stage(path, upload.content)
            except OSError as e:
                logger.error("Failed to stage upload for %s: %s", upload.field, str(e))
                raise DependencyError(
                    message="Failed to process uploaded image. Please try again.",
                    context={"os_error": str(e)},
                )
            return await self.asset_store.upload(str(path), folder)
        finally:
            await self._remove(path)

    async def discard(self, public_id: Optional[str], reason: str) -> bool:
        """
        Best-effort deletion of an asset that is no longer referenced.

        Never raises. Returns False (and logs a warning) when deletion failed;
        the asset is then orphaned on the host.
        """
        if not public_id:
            return True
        try:
            await self.asset_store.delete(public_id)
            return True
        except Exception as e:
            logger.warning(
                "Could not delete %s asset %s: %s", reason, public_id, str(e)
            )
            return False
