"""
Expense Tracker Backend — Cloudinary Asset Store
=================================================

What:  AssetStore implementation backed by Cloudinary.
How:   The Cloudinary SDK is synchronous, so each call runs in a worker
       thread. Calls are wrapped in a tenacity retry (exponential backoff
       with jitter); exhaustion is surfaced as DependencyError.
Who:   Built by create_app() from Settings; called through UploadService.

Uploaded images are limited to 1000x1000 (aspect preserved) with automatic
quality, the same transformation for avatars and receipts.

Credentials are passed on every call instead of through `cloudinary.config()`,
so two apps with different settings never share SDK state.
"""

import logging
import time
import uuid
from pathlib import Path
from typing import Any, Dict

import cloudinary.uploader
from starlette.concurrency import run_in_threadpool
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential_jitter,
)

from expense_tracker.config import Settings
from expense_tracker.exceptions import DependencyError
from expense_tracker.schemas.changes import AssetRef
from expense_tracker.services.asset_store import AssetStore

logger = logging.getLogger(__name__)

UPLOAD_TRANSFORMATION = [
    {"width": 1000, "height": 1000, "crop": "limit"},
    {"quality": "auto"},
]


class CloudinaryAssetStore(AssetStore):
    def __init__(self, settings: Settings):
        self._credentials: Dict[str, Any] = {
            "cloud_name": settings.cloudinary_cloud_name,
            "api_key": settings.cloudinary_api_key,
            "api_secret": settings.cloudinary_api_secret,
            "secure": True,
        }
        self.max_attempts = settings.retry_max_attempts
        self.min_wait = settings.retry_min_wait
        self.max_wait = settings.retry_max_wait

        logger.info(
            "CloudinaryAssetStore initialized (cloud=%s, retries=%d)",
            settings.cloudinary_cloud_name or "<unset>",
            self.max_attempts,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential_jitter(
                initial=self.min_wait,
                max=self.max_wait,
                jitter=1 if self.max_wait else 0,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )

    async def _call(self, operation: str, func, *args, **kwargs) -> Dict[str, Any]:
        """Run a blocking SDK call with retries. Returns the SDK's result dict."""
        call_id = uuid.uuid4().hex[:8]
        start_time = time.time()
        try:
            async for attempt in self._retrying():
                with attempt:
                    return await run_in_threadpool(func, *args, **kwargs)
        except RetryError as e:
            last = e.last_attempt.exception() if e.last_attempt else None
            logger.error(
                "[%s] Cloudinary %s failed after %d attempts (%.0fms): %s",
                call_id,
                operation,
                self.max_attempts,
                (time.time() - start_time) * 1000,
                str(last),
            )
            raise DependencyError(
                context={
                    "operation": operation,
                    "attempts": self.max_attempts,
                    "error_type": type(last).__name__ if last else None,
                },
            )

    async def upload(self, file_path: str, folder: str) -> AssetRef:
        result = await self._call(
            "upload",
            cloudinary.uploader.upload,
            file_path,
            folder=folder,
            resource_type="image",
            transformation=UPLOAD_TRANSFORMATION,
            **self._credentials,
        )
        url = result.get("secure_url") or result.get("url")
        public_id = result.get("public_id")
        if not url or not public_id:
            logger.error("Cloudinary upload returned no URL/public_id for %s", Path(file_path).name)
            raise DependencyError(context={"operation": "upload", "result_keys": sorted(result)})

        logger.info("Uploaded image to Cloudinary: %s", public_id)
        return AssetRef(url=url, public_id=public_id)

    async def delete(self, public_id: str) -> None:
        result = await self._call(
            "delete",
            cloudinary.uploader.destroy,
            public_id,
            resource_type="image",
            **self._credentials,
        )
        # "not found" means it is already gone
        logger.info("Deleted Cloudinary image %s: %s", public_id, result.get("result"))
