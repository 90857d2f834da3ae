import logging
from typing import Optional

from dropzone_upload.core.config import Settings, settings
from dropzone_upload.core.exceptions import MalformedSession, MissingFile, StorageIOError, UploadError, UploadTooLarge
from dropzone_upload.core.hooks import HookRegistry, hooks
from dropzone_upload.core.security import AuthorizationGate
from dropzone_upload.core.session import session_lock
from dropzone_upload.schemas.token import Actor
from dropzone_upload.schemas.upload import ChunkStatus, IncomingFilePart, UploadRequest, UploadResult
from dropzone_upload.services.chunk_store import ChunkStore
from dropzone_upload.services.extension_policy import ExtensionPolicy
from dropzone_upload.services.finalizer import Finalizer
from dropzone_upload.services.storage.base import BaseStorage
from dropzone_upload.services.storage.factory import create_storage

logger = logging.getLogger(__name__)


def _parse_int(value: str, field: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise MalformedSession(f"Invalid {field}.")


class UploadService:
    """
    Entry point for the upload endpoint.

    A request is either a direct upload or one step of a chunked session,
    selected by the presence of ``dzuuid``. Whatever happens, exactly one
    :class:`UploadResult` comes back.
    """

    def __init__(
        self,
        gate: AuthorizationGate,
        policy: ExtensionPolicy,
        chunk_store: ChunkStore,
        storage: BaseStorage,
        finalizer: Finalizer,
        max_upload_size_bytes: int,
    ):
        self.gate = gate
        self.policy = policy
        self.chunk_store = chunk_store
        self.storage = storage
        self.finalizer = finalizer
        self.max_upload_size_bytes = max_upload_size_bytes

    async def handle(self, request: UploadRequest, actor: Optional[Actor]) -> UploadResult:
        try:
            self.gate.authorize(request.nonce, actor)
            if request.file is None:
                raise MissingFile()
            if request.is_chunked:
                return await self._handle_chunk(request, request.file)
            return await self._handle_direct(request.file)
        except UploadError as e:
            logger.warning(f"Upload rejected ({e.status_code}): {e.message}")
            return UploadResult.failed(e)
        except Exception:
            logger.exception("Unexpected error while handling upload")
            return UploadResult.failed(StorageIOError())

    async def _handle_direct(self, part: IncomingFilePart) -> UploadResult:
        self.policy.enforce(part.filename)
        if part.size is not None and part.size > self.max_upload_size_bytes:
            raise UploadTooLarge()
        return await self.finalizer.finalize_direct(part)

    async def _handle_chunk(self, request: UploadRequest, part: IncomingFilePart) -> UploadResult:
        if request.dzchunkindex is None or request.dztotalchunkcount is None:
            raise MalformedSession("Chunk index and total chunk count are required.")
        chunk_index = _parse_int(request.dzchunkindex, "chunk index") + 1
        total_chunks = _parse_int(request.dztotalchunkcount, "total chunk count")
        byte_offset = None
        if request.dzchunkbyteoffset is not None:
            byte_offset = _parse_int(request.dzchunkbyteoffset, "chunk byte offset")

        session_key = self.chunk_store.session_key(request.dzuuid)
        async with session_lock(session_key):
            try:
                session = await self.chunk_store.open_or_continue(
                    session_key, part.filename, request.origtype or part.content_type
                )
                if chunk_index == 1:
                    self.policy.enforce(session.filename)
                status = await self.chunk_store.append_chunk(
                    session, chunk_index, total_chunks, part.stream, byte_offset
                )
            except Exception:
                await self.chunk_store.abort(session_key)
                raise

            if status is ChunkStatus.PENDING:
                return UploadResult.chunk_accepted()
            logger.info(
                f"Session {session_key} complete: {session.filename} "
                f"({session.total_chunks} chunks, {session.received_bytes} bytes)"
            )
            return await self.finalizer.finalize_session(session)


def create_upload_service(config: Settings = settings, hook_registry: HookRegistry = hooks) -> UploadService:
    policy = ExtensionPolicy(config.ALLOWED_UPLOAD_EXTENSIONS)
    chunk_store = ChunkStore(config.LOCAL_TEMP_CHUNK_PATH, policy, config.max_upload_size_bytes)
    storage = create_storage(config, policy)
    return UploadService(
        gate=AuthorizationGate(config.UPLOAD_CAPABILITY),
        policy=policy,
        chunk_store=chunk_store,
        storage=storage,
        finalizer=Finalizer(storage, chunk_store, hook_registry),
        max_upload_size_bytes=config.max_upload_size_bytes,
    )


_upload_service: Optional[UploadService] = None


def get_upload_service() -> UploadService:
    global _upload_service
    if _upload_service is None:
        _upload_service = create_upload_service()
    return _upload_service
