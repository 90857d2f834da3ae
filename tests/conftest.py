"""Test configuration and fixtures for the upload service."""

import io
import os
import time

os.environ["MAIN_SERVICE_JWT_PUBLIC_KEY"] = "main-service-test-secret-0123456789abcdef"
os.environ["JWT_ALGORITHM"] = "HS256"
os.environ["EXPECTED_JWT_ISSUER"] = "main-service"
os.environ["EXPECTED_JWT_AUDIENCE"] = "upload-service"
os.environ["NONCE_SECRET_KEY"] = "nonce-test-secret-0123456789abcdef0123"

import jwt
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from dropzone_upload.core.config import settings
from dropzone_upload.core.hooks import HookRegistry
from dropzone_upload.core.security import create_nonce
from dropzone_upload.main import app
from dropzone_upload.services.upload_service import create_upload_service, get_upload_service

ACTOR_ID = "42"


@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing every directory at a fresh temp dir."""
    return settings.model_copy(update={
        "LOCAL_TEMP_CHUNK_PATH": str(tmp_path / "chunks"),
        "PERSISTENT_LOCAL_STORAGE_PATH": str(tmp_path / "uploads"),
        "ASSET_INDEX_PATH": str(tmp_path / "assets"),
        "UPLOAD_SERVICE_BASE_URL": "http://media.test",
        "MAX_UPLOAD_SIZE_MB": 1,
    })


@pytest.fixture
def hook_registry():
    return HookRegistry()


@pytest.fixture
def upload_service(test_settings, hook_registry):
    return create_upload_service(test_settings, hook_registry)


@pytest.fixture
def client(upload_service):
    app.dependency_overrides[get_upload_service] = lambda: upload_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_token():
    """Build a main-service JWT for an actor."""
    def _make(sub=ACTOR_ID, capabilities=("upload_files",), **claims):
        payload = {
            "sub": sub,
            "iss": settings.EXPECTED_JWT_ISSUER,
            "aud": settings.EXPECTED_JWT_AUDIENCE,
            "exp": int(time.time()) + 3600,
            "capabilities": list(capabilities),
        }
        payload.update(claims)
        return jwt.encode(payload, settings.MAIN_SERVICE_JWT_PUBLIC_KEY, algorithm=settings.JWT_ALGORITHM)
    return _make


@pytest.fixture
def auth_headers(make_token):
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def nonce():
    return create_nonce(ACTOR_ID)


@pytest.fixture
def jpeg_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (400, 300), (200, 30, 30)).save(buffer, "JPEG")
    return buffer.getvalue()


@pytest.fixture
def chunk_dir(test_settings):
    return test_settings.LOCAL_TEMP_CHUNK_PATH


@pytest.fixture
def upload_dir(test_settings):
    return test_settings.PERSISTENT_LOCAL_STORAGE_PATH
