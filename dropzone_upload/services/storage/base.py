from abc import ABC, abstractmethod
from typing import Any, BinaryIO, Dict, Optional

from dropzone_upload.schemas.upload import AssetCreate, MediaAsset, StoredFile


class BaseStorage(ABC):
    """The media library that finalized uploads are handed to."""

    @abstractmethod
    async def receive_upload(
        self,
        stream: BinaryIO,
        filename: str,
        content_type: str = "",
        test_form: bool = True,
        test_type: bool = True,
    ) -> StoredFile:
        pass

    @abstractmethod
    async def register_asset(self, request: AssetCreate, stored: StoredFile) -> MediaAsset:
        pass

    @abstractmethod
    async def discard_upload(self, stored: StoredFile, asset_id: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def generate_metadata(self, asset: MediaAsset) -> Dict[str, Any]:
        pass

    @abstractmethod
    def resolve(self, relative_path: str) -> Optional[str]:
        pass
