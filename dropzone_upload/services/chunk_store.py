import os
import re
import time
import asyncio
import logging
import concurrent.futures
from datetime import datetime
from typing import BinaryIO, Optional

from pydantic import ValidationError

from dropzone_upload.core.exceptions import MalformedSession, MissingFile, StorageIOError, UploadTooLarge
from dropzone_upload.schemas.upload import ChunkStatus, UploadSession
from dropzone_upload.services.extension_policy import ExtensionPolicy

logger = logging.getLogger(__name__)

# Thread pool for blocking file I/O
thread_pool = concurrent.futures.ThreadPoolExecutor(max_workers=4)

_SESSION_KEY = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
_COPY_BLOCK_SIZE = 1024 * 1024
DATA_SUFFIX = ".part"
META_SUFFIX = ".json"


class ChunkStore:
    """
    Reassembles chunked uploads in a private temp directory.

    Each session owns ``<key>.part`` with the bytes received so far and
    ``<key>.json`` with its :class:`UploadSession` record. Chunks are appended
    strictly in order; anything else is rejected as a malformed session.
    """

    def __init__(self, temp_dir: str, policy: ExtensionPolicy, max_upload_size_bytes: int):
        self.temp_dir = temp_dir
        self.policy = policy
        self.max_upload_size_bytes = max_upload_size_bytes

    def session_key(self, token: Optional[str]) -> str:
        key = (token or "").strip()
        if not _SESSION_KEY.match(key):
            raise MalformedSession("Invalid upload session id.")
        return key

    def data_path(self, session_key: str) -> str:
        return os.path.join(self.temp_dir, session_key + DATA_SUFFIX)

    def meta_path(self, session_key: str) -> str:
        return os.path.join(self.temp_dir, session_key + META_SUFFIX)

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(thread_pool, func, *args)

    def _load_session_sync(self, session_key: str) -> Optional[UploadSession]:
        path = self.meta_path(session_key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return UploadSession.model_validate_json(f.read())
        except OSError as e:
            logger.error(f"Could not read session {session_key}: {e}")
            raise StorageIOError() from e
        except ValidationError as e:
            logger.warning(f"Discarding corrupt state of session {session_key}: {e}")
            raise MalformedSession("The upload session state is corrupt.") from e

    def _persist_session_sync(self, session: UploadSession) -> None:
        with open(self.meta_path(session.session_key), "w", encoding="utf-8") as f:
            f.write(session.model_dump_json())

    async def open_or_continue(self, token: str, filename_hint: str, content_type: str = "") -> UploadSession:
        """Return the stored session for ``token`` or a new, unsaved one."""
        session_key = self.session_key(token)
        session = await self._run(self._load_session_sync, session_key)
        if session is not None:
            return session
        return UploadSession(
            session_key=session_key,
            filename=self.policy.sanitize_filename(filename_hint or ""),
            content_type=content_type or "",
        )

    def _check_order(self, session: UploadSession, chunk_index: int, total_chunks: int, byte_offset: Optional[int]):
        if total_chunks < 1 or chunk_index < 1 or chunk_index > total_chunks:
            raise MalformedSession(f"Invalid chunk {chunk_index} of {total_chunks}.")
        if not session.is_new and total_chunks != session.total_chunks:
            raise MalformedSession("Total chunk count changed during the upload.")
        expected = session.last_chunk_index + 1
        if chunk_index <= session.last_chunk_index:
            raise MalformedSession(f"Chunk {chunk_index} was already received.")
        if chunk_index != expected:
            raise MalformedSession(f"Chunk {chunk_index} received out of order, expected {expected}.")
        if byte_offset is not None and byte_offset != session.received_bytes:
            raise MalformedSession(
                f"Chunk offset {byte_offset} does not match the {session.received_bytes} bytes received."
            )

    def _append_chunk_sync(
        self,
        session: UploadSession,
        chunk_index: int,
        total_chunks: int,
        stream: BinaryIO,
        byte_offset: Optional[int],
    ) -> ChunkStatus:
        self._check_order(session, chunk_index, total_chunks, byte_offset)

        written = 0
        try:
            os.makedirs(self.temp_dir, exist_ok=True)
            # A first chunk never continues leftover bytes from a crashed session
            with open(self.data_path(session.session_key), "wb" if session.is_new else "ab") as out:
                while True:
                    block = stream.read(_COPY_BLOCK_SIZE)
                    if not block:
                        break
                    written += len(block)
                    if session.received_bytes + written > self.max_upload_size_bytes:
                        raise UploadTooLarge()
                    out.write(block)
        except OSError as e:
            logger.error(f"Error appending chunk {chunk_index} for session {session.session_key}: {e}")
            raise StorageIOError() from e

        if written == 0:
            raise MissingFile("Empty chunk received.")

        session.total_chunks = total_chunks
        session.last_chunk_index = chunk_index
        session.received_bytes += written
        session.updated_at = datetime.now()
        try:
            self._persist_session_sync(session)
        except OSError as e:
            logger.error(f"Error saving session {session.session_key}: {e}")
            raise StorageIOError() from e

        logger.debug(
            f"Chunk {chunk_index}/{total_chunks} appended to {session.session_key} "
            f"({written} bytes, {session.received_bytes} total)"
        )
        return ChunkStatus.COMPLETE if chunk_index == total_chunks else ChunkStatus.PENDING

    async def append_chunk(
        self,
        session: UploadSession,
        chunk_index: int,
        total_chunks: int,
        stream: BinaryIO,
        byte_offset: Optional[int] = None,
    ) -> ChunkStatus:
        """Append one chunk; ``chunk_index`` is 1-based."""
        return await self._run(self._append_chunk_sync, session, chunk_index, total_chunks, stream, byte_offset)

    def _abort_sync(self, session_key: str) -> None:
        for path in (self.data_path(session_key), self.meta_path(session_key)):
            try:
                os.remove(path)
            except FileNotFoundError:
                pass

    async def abort(self, token: str) -> None:
        """Delete the session's temp files. Safe to call repeatedly."""
        session_key = self.session_key(token)
        await self._run(self._abort_sync, session_key)
        logger.debug(f"Session {session_key} cleaned up")

    def _purge_stale_sync(self, max_age_seconds: int, now: Optional[float] = None) -> int:
        if not os.path.isdir(self.temp_dir):
            return 0
        cutoff = (now if now is not None else time.time()) - max_age_seconds
        purged = set()
        with os.scandir(self.temp_dir) as entries:
            for entry in entries:
                if not entry.is_file() or not entry.name.endswith((DATA_SUFFIX, META_SUFFIX)):
                    continue
                if entry.stat().st_mtime >= cutoff:
                    continue
                try:
                    os.remove(entry.path)
                except FileNotFoundError:
                    continue
                purged.add(os.path.splitext(entry.name)[0])
        return len(purged)

    async def purge_stale(self, max_age_seconds: int, now: Optional[float] = None) -> int:
        """Delete abandoned sessions not touched for ``max_age_seconds``."""
        purged = await self._run(self._purge_stale_sync, max_age_seconds, now)
        if purged:
            logger.info(f"Purged {purged} stale upload session(s) from {self.temp_dir}")
        return purged
