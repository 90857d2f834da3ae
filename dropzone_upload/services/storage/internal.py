import os
import shutil
import asyncio
import logging
import mimetypes
import concurrent.futures
from datetime import datetime
from typing import Any, BinaryIO, Dict, Optional, Tuple
from urllib.parse import quote
from uuid import uuid4

import magic
from PIL import Image, ImageOps

from .base import BaseStorage
from dropzone_upload.core.exceptions import DisallowedExtension, MissingFile, StorageIOError, UploadError, UploadTooLarge
from dropzone_upload.schemas.upload import AssetCreate, MediaAsset, StoredFile
from dropzone_upload.services.extension_policy import ExtensionPolicy, file_extension

logger = logging.getLogger(__name__)

# Thread pool for blocking file and image I/O
thread_pool = concurrent.futures.ThreadPoolExecutor(max_workers=4)

IMAGE_EXTENSIONS = {"jpg", "jpeg", "jpe", "gif", "png", "bmp", "tif", "tiff", "ico", "webp"}
RESIZABLE_FORMATS = {"JPEG", "PNG", "GIF", "WEBP"}

# name -> (width, height, crop)
IMAGE_SUB_SIZES = {
    "thumbnail": (150, 150, True),
    "medium": (300, 300, False),
}


SECURITY_REJECTION = "Sorry, this file type is not permitted for security reasons."

# Content that must never be served from the media library, whatever the name says
DANGEROUS_MIME_TYPES = {
    "text/html",
    "application/xhtml+xml",
    "image/svg+xml",
    "text/javascript",
    "application/javascript",
    "text/x-php",
    "application/x-php",
    "text/x-shellscript",
    "application/x-sh",
    "text/x-python",
    "text/x-perl",
    "application/x-executable",
    "application/x-sharedlib",
    "application/x-pie-executable",
    "application/x-dosexec",
    "application/x-mach-binary",
    "application/java-archive",
}

# Detected types too generic to contradict a more specific extension
CONTAINER_MIME_TYPES = {"application/octet-stream", "application/zip"}


def _content_matches(detected: str, expected: str) -> bool:
    if detected == expected or detected in CONTAINER_MIME_TYPES:
        return True
    return detected == "text/plain" and expected.startswith("text/")


def sniff_mime_type(path: str, filename: str) -> str:
    """
    Work out the MIME type of a stored file from its content.

    Images are identified by Pillow; a file with an image extension that is
    not an image is refused. Everything else goes through libmagic: active
    content is refused, and when the content contradicts the extension the
    detected type wins.
    """
    if file_extension(filename) in IMAGE_EXTENSIONS:
        try:
            with Image.open(path) as img:
                img_format = img.format
        except Image.DecompressionBombError:
            raise UploadTooLarge("The image dimensions are too large to process.")
        except OSError:
            raise DisallowedExtension(SECURITY_REJECTION)
        mime_type = Image.MIME.get(img_format)
        if mime_type:
            return mime_type

    detected = magic.from_file(path, mime=True)
    if detected in DANGEROUS_MIME_TYPES:
        logger.warning(f"Rejected {filename!r}: content detected as {detected}")
        raise DisallowedExtension(SECURITY_REJECTION)

    expected, _ = mimetypes.guess_type(filename)
    if expected is None:
        return detected
    if _content_matches(detected, expected):
        return expected
    logger.warning(f"Content of {filename!r} is {detected}, not {expected}; recording the detected type")
    return detected


class InternalStorage(BaseStorage):
    """Media library on the local filesystem, served under ``/files``."""

    def __init__(
        self,
        root: str,
        index_dir: str,
        base_url: str,
        policy: ExtensionPolicy,
        use_yearmonth_folders: bool = True,
    ):
        self.root = root
        self.index_dir = index_dir
        self.base_url = base_url.rstrip("/")
        self.policy = policy
        self.use_yearmonth_folders = use_yearmonth_folders

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(thread_pool, func, *args)

    def url_for(self, relative_path: str) -> str:
        return f"{self.base_url}/files/{quote(relative_path)}"

    def _upload_subdir(self) -> str:
        if not self.use_yearmonth_folders:
            return ""
        return datetime.now().strftime("%Y/%m")

    def _reserve_unique(self, directory: str, filename: str) -> Tuple[int, str]:
        """Create an empty file named like ``filename``, adding -1, -2... on clashes."""
        stem, ext = os.path.splitext(filename)
        candidate = filename
        number = 0
        while True:
            path = os.path.join(directory, candidate)
            try:
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
                return fd, path
            except FileExistsError:
                number += 1
                candidate = f"{stem}-{number}{ext}"

    def _discard(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

    def _receive_upload_sync(
        self,
        stream: BinaryIO,
        filename: str,
        content_type: str,
        test_form: bool,
        test_type: bool,
    ) -> StoredFile:
        if test_type:
            self.policy.enforce(filename)
        name = self.policy.sanitize_filename(filename)
        subdir = self._upload_subdir()
        directory = os.path.join(self.root, subdir)

        try:
            os.makedirs(directory, exist_ok=True)
            fd, path = self._reserve_unique(directory, name)
        except OSError as e:
            logger.error(f"Could not create upload target in {directory}: {e}")
            raise StorageIOError() from e

        try:
            with os.fdopen(fd, "wb") as out:
                shutil.copyfileobj(stream, out)
            size = os.path.getsize(path)
            if size == 0:
                raise MissingFile("File is empty. Please upload something more substantial.")
            mime_type = sniff_mime_type(path, name)
            if test_form and content_type and content_type != mime_type:
                raise DisallowedExtension("The file type does not match its contents.")
        except OSError as e:
            logger.error(f"Error writing upload {path}: {e}")
            self._discard(path)
            raise StorageIOError() from e
        except UploadError:
            self._discard(path)
            raise
        except Exception:
            logger.exception(f"Unexpected error while storing {path}")
            self._discard(path)
            raise

        stored_name = os.path.basename(path)
        relative_path = "/".join(part for part in (subdir, stored_name) if part)
        logger.info(f"Stored upload {relative_path} ({size} bytes, {mime_type})")
        return StoredFile(
            path=path,
            relative_path=relative_path,
            url=self.url_for(relative_path),
            filename=stored_name,
            mime_type=mime_type,
            size=size,
        )

    async def receive_upload(
        self,
        stream: BinaryIO,
        filename: str,
        content_type: str = "",
        test_form: bool = True,
        test_type: bool = True,
    ) -> StoredFile:
        return await self._run(self._receive_upload_sync, stream, filename, content_type, test_form, test_type)

    def _asset_path(self, asset_id: str) -> str:
        return os.path.join(self.index_dir, f"{asset_id}.json")

    def _save_asset(self, asset: MediaAsset) -> None:
        os.makedirs(self.index_dir, exist_ok=True)
        with open(self._asset_path(asset.id), "w", encoding="utf-8") as f:
            f.write(asset.model_dump_json())

    def _register_asset_sync(self, request: AssetCreate, stored: StoredFile) -> MediaAsset:
        asset = MediaAsset(
            id=uuid4().hex,
            title=request.title,
            mime_type=request.mime_type,
            status=request.status,
            url=request.guid,
            relative_path=stored.relative_path,
        )
        try:
            self._save_asset(asset)
        except OSError as e:
            logger.error(f"Could not register asset for {stored.relative_path}: {e}")
            raise StorageIOError() from e
        logger.info(f"Registered asset {asset.id} for {stored.relative_path}")
        return asset

    async def register_asset(self, request: AssetCreate, stored: StoredFile) -> MediaAsset:
        return await self._run(self._register_asset_sync, request, stored)

    def get_asset(self, asset_id: str) -> Optional[MediaAsset]:
        try:
            with open(self._asset_path(asset_id), "r", encoding="utf-8") as f:
                return MediaAsset.model_validate_json(f.read())
        except FileNotFoundError:
            return None

    def _discard_upload_sync(self, stored: StoredFile, asset_id: Optional[str]) -> None:
        self._discard(stored.path)
        if asset_id:
            self._discard(self._asset_path(asset_id))
        logger.info(f"Discarded upload {stored.relative_path}")

    async def discard_upload(self, stored: StoredFile, asset_id: Optional[str] = None) -> None:
        """Remove a stored file, and its asset record if one was written."""
        await self._run(self._discard_upload_sync, stored, asset_id)

    def _save_resized(self, resized: Image.Image, directory: str, name: str, img_format: str) -> str:
        fd, target = self._reserve_unique(directory, name)
        try:
            with os.fdopen(fd, "wb") as out:
                resized.save(out, format=img_format)
        except Exception:
            self._discard(target)
            raise
        return target

    def _image_metadata(self, path: str) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {"sizes": {}}
        directory = os.path.dirname(path)
        stem, ext = os.path.splitext(os.path.basename(path))
        with Image.open(path) as img:
            metadata["width"], metadata["height"] = img.size
            if img.format not in RESIZABLE_FORMATS:
                return metadata
            img_format = img.format
            source = ImageOps.exif_transpose(img)
            if img_format == "JPEG" and source.mode not in ("RGB", "L"):
                source = source.convert("RGB")

            for size_name, (width, height, crop) in IMAGE_SUB_SIZES.items():
                if source.width <= width and source.height <= height:
                    continue
                if crop:
                    resized = ImageOps.fit(source, (width, height))
                else:
                    resized = source.copy()
                    resized.thumbnail((width, height))
                # Never replaces an existing asset that happens to use the same name
                name = f"{stem}-{resized.width}x{resized.height}{ext}"
                target = self._save_resized(resized, directory, name, img_format)
                metadata["sizes"][size_name] = {
                    "file": os.path.basename(target),
                    "width": resized.width,
                    "height": resized.height,
                    "mime_type": Image.MIME.get(img_format),
                }
        return metadata

    def _generate_metadata_sync(self, asset: MediaAsset) -> Dict[str, Any]:
        path = os.path.join(self.root, asset.relative_path)
        metadata: Dict[str, Any] = {
            "file": asset.relative_path,
            "filesize": os.path.getsize(path),
        }
        if asset.mime_type.startswith("image/"):
            metadata.update(self._image_metadata(path))
        asset.metadata = metadata
        self._save_asset(asset)
        return metadata

    async def generate_metadata(self, asset: MediaAsset) -> Dict[str, Any]:
        """Record file size and, for images, dimensions and resized copies."""
        return await self._run(self._generate_metadata_sync, asset)

    def resolve(self, relative_path: str) -> Optional[str]:
        root = os.path.realpath(self.root)
        path = os.path.realpath(os.path.join(root, relative_path))
        if not path.startswith(root + os.sep) or not os.path.isfile(path):
            return None
        return path
