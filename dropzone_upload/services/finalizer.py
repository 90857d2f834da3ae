import os
import logging
from typing import BinaryIO

from dropzone_upload.core.exceptions import StorageIOError
from dropzone_upload.core.hooks import AFTER_INSERT_ATTACHMENT, AFTER_UPLOAD_FILE, BEFORE_UPLOAD_FILE, HookRegistry
from dropzone_upload.schemas.upload import AssetCreate, IncomingFilePart, UploadResult, UploadSession
from dropzone_upload.services.chunk_store import ChunkStore
from dropzone_upload.services.storage.base import BaseStorage

logger = logging.getLogger(__name__)


class Finalizer:
    """Hands a complete file to the media library and registers it as an asset."""

    def __init__(self, storage: BaseStorage, chunk_store: ChunkStore, hooks: HookRegistry):
        self.storage = storage
        self.chunk_store = chunk_store
        self.hooks = hooks

    async def finalize_session(self, session: UploadSession) -> UploadResult:
        """Store a reassembled chunk session. Its temp files are removed either way."""
        try:
            try:
                source = open(self.chunk_store.data_path(session.session_key), "rb")
            except OSError as e:
                logger.error(f"Reassembled file for session {session.session_key} is unreadable: {e}")
                raise StorageIOError() from e
            with source:
                return await self._store(source, session.filename, session.content_type)
        finally:
            await self.chunk_store.abort(session.session_key)

    async def finalize_direct(self, part: IncomingFilePart) -> UploadResult:
        return await self._store(part.stream, part.filename, part.content_type)

    async def _store(self, stream: BinaryIO, filename: str, content_type: str) -> UploadResult:
        file_info = {"name": filename, "type": content_type}
        self.hooks.dispatch(BEFORE_UPLOAD_FILE, file_info)

        # The form and type hints were checked before; only the content decides now
        stored = await self.storage.receive_upload(stream, filename, content_type, test_form=False)

        # A failed request must not leave a public file behind
        asset = None
        try:
            self.hooks.dispatch(AFTER_UPLOAD_FILE, file_info)
            asset = await self.storage.register_asset(
                AssetCreate(
                    guid=stored.url,
                    title=os.path.splitext(stored.filename)[0],
                    mime_type=stored.mime_type,
                    status="inherit",
                ),
                stored,
            )
            self.hooks.dispatch(AFTER_INSERT_ATTACHMENT, asset)
        except Exception:
            await self.storage.discard_upload(stored, asset.id if asset else None)
            raise

        try:
            await self.storage.generate_metadata(asset)
        except Exception as e:
            logger.warning(f"Metadata generation failed for asset {asset.id}: {e}", exc_info=True)

        logger.info(f"Upload finalized as asset {asset.id}: {asset.url}")
        return UploadResult.stored(asset.url)
