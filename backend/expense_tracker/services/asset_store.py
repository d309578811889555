"""
Expense Tracker Backend — Abstract Asset Store Interface
=========================================================

What:  Contract for the external image host that keeps avatars and receipts.
How:   Concrete stores implement `upload()` and `delete()`; callers only ever
       see `AssetRef` values and `DependencyError`.
Who:   UploadService (upload/discard) and, through it, AuthService and
       ExpenseService.

Implementations:
    - CloudinaryAssetStore: production store (services/cloudinary_service.py)
    - The test suite supplies an in-memory fake through `create_app(asset_store=...)`
"""

from abc import ABC, abstractmethod

from expense_tracker.schemas.changes import AssetRef


class AssetStore(ABC):
    """
    Contract:
        - upload() returns a reference whose `public_id` can later be passed
          to delete()
        - Implementations handle their own retries and translate provider
          errors into DependencyError
        - delete() of an id that no longer exists is not an error
    """

    @abstractmethod
    async def upload(self, file_path: str, folder: str) -> AssetRef:
        """
        Store the image at `file_path` under `folder`.

        Raises:
            DependencyError: The host failed after all retries.
        """
        ...

    @abstractmethod
    async def delete(self, public_id: str) -> None:
        """
        Remove a previously uploaded asset.

        Raises:
            DependencyError: The host failed after all retries.
        """
        ...
