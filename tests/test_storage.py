"""
Tests for the local media library: unique names, content sniffing and
cleanup of files that never became assets.
"""

import io
import os
import struct
import zlib

import pytest
from PIL import Image

from dropzone_upload.core.exceptions import DisallowedExtension, UploadTooLarge
from dropzone_upload.schemas.upload import AssetCreate
from dropzone_upload.services.extension_policy import ExtensionPolicy
from dropzone_upload.services.storage import internal
from dropzone_upload.services.storage.internal import InternalStorage


def image_bytes(width, height, fmt="JPEG"):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (10, 120, 200)).save(buffer, fmt)
    return buffer.getvalue()


def png_header_only(width, height):
    """A PNG that declares its size but carries no pixel data."""
    def chunk(kind, data):
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))

    ihdr = struct.pack(">IIBBBBB", width, height, 1, 0, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", zlib.compress(b"")) + chunk(b"IEND", b"")


@pytest.fixture
def storage(tmp_path):
    return InternalStorage(
        root=str(tmp_path / "uploads"),
        index_dir=str(tmp_path / "assets"),
        base_url="http://media.test",
        policy=ExtensionPolicy({"jpg", "png", "pdf", "txt"}),
        use_yearmonth_folders=False,
    )


async def store_asset(storage, filename, data):
    stored = await storage.receive_upload(io.BytesIO(data), filename, test_form=False)
    asset = await storage.register_asset(
        AssetCreate(guid=stored.url, title=filename, mime_type=stored.mime_type),
        stored,
    )
    return stored, asset


class TestResizedCopies:

    @pytest.mark.asyncio
    async def test_existing_asset_is_not_overwritten(self, storage):
        original = image_bytes(150, 150)
        first, _ = await store_asset(storage, "photo-150x150.jpg", original)
        _, asset = await store_asset(storage, "photo.jpg", image_bytes(400, 300))

        await storage.generate_metadata(asset)

        with open(first.path, "rb") as f:
            assert f.read() == original
        sizes = storage.get_asset(asset.id).metadata["sizes"]
        assert sizes["thumbnail"]["file"] == "photo-150x150-1.jpg"
        assert sizes["medium"]["file"] == "photo-300x225.jpg"
        assert os.path.exists(os.path.join(storage.root, "photo-150x150-1.jpg"))

    @pytest.mark.asyncio
    async def test_metadata_is_recorded(self, storage):
        _, asset = await store_asset(storage, "photo.jpg", image_bytes(400, 300))

        await storage.generate_metadata(asset)

        metadata = storage.get_asset(asset.id).metadata
        assert metadata["file"] == "photo.jpg"
        assert (metadata["width"], metadata["height"]) == (400, 300)
        assert metadata["sizes"]["thumbnail"]["width"] == 150


class TestContentSniffing:

    @pytest.mark.asyncio
    async def test_pdf(self, storage):
        stored, asset = await store_asset(storage, "report.pdf", b"%PDF-1.4\n%test document\n")
        assert stored.mime_type == "application/pdf"
        assert storage.get_asset(asset.id).mime_type == "application/pdf"

    @pytest.mark.asyncio
    async def test_markup_behind_harmless_extension(self, storage):
        with pytest.raises(DisallowedExtension):
            await storage.receive_upload(
                io.BytesIO(b"<html><body><script>alert(document.cookie)</script></body></html>"),
                "doc.pdf",
                test_form=False,
            )
        assert os.listdir(storage.root) == []

    @pytest.mark.asyncio
    async def test_detected_type_wins_over_extension(self, storage):
        stored, _ = await store_asset(storage, "doc.pdf", b"just a few plain words\n")
        assert stored.mime_type == "text/plain"

    @pytest.mark.asyncio
    async def test_plain_text(self, storage):
        stored, _ = await store_asset(storage, "notes.txt", b"hello media library\n")
        assert stored.mime_type == "text/plain"


class TestDiscard:

    @pytest.mark.asyncio
    async def test_oversized_image_dimensions(self, storage):
        with pytest.raises(UploadTooLarge):
            await storage.receive_upload(io.BytesIO(png_header_only(20000, 10000)), "bomb.png", test_form=False)
        assert os.listdir(storage.root) == []

    @pytest.mark.asyncio
    async def test_unexpected_error_removes_file(self, storage, monkeypatch):
        def broken_sniff(path, filename):
            raise RuntimeError("sniffer crashed")

        monkeypatch.setattr(internal, "sniff_mime_type", broken_sniff)

        with pytest.raises(RuntimeError):
            await storage.receive_upload(io.BytesIO(b"hello"), "notes.txt", test_form=False)
        assert os.listdir(storage.root) == []

    @pytest.mark.asyncio
    async def test_discard_upload_removes_file_and_record(self, storage):
        stored, asset = await store_asset(storage, "notes.txt", b"hello media library\n")

        await storage.discard_upload(stored, asset.id)

        assert not os.path.exists(stored.path)
        assert storage.get_asset(asset.id) is None
        assert storage.resolve(stored.relative_path) is None
