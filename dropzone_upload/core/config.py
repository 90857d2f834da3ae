from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Set

DEFAULT_ALLOWED_EXTENSIONS = {
    # images
    "jpg", "jpeg", "jpe", "gif", "png", "bmp", "tif", "tiff", "ico", "webp", "heic", "avif",
    # documents
    "pdf", "doc", "docx", "odt", "xls", "xlsx", "ods", "ppt", "pptx", "pps", "ppsx", "odp",
    "rtf", "txt", "csv", "psd", "key",
    # audio / video
    "mp3", "m4a", "ogg", "oga", "wav", "flac", "mp4", "m4v", "mov", "wmv", "avi", "mpg",
    "mpeg", "ogv", "webm", "3gp", "3g2",
    # archives
    "zip", "gz", "7z",
}


class Settings(BaseSettings):
    ENV: str = "local"
    LOG_LEVEL: str = "INFO"

    MAIN_SERVICE_JWT_PUBLIC_KEY: str
    JWT_ALGORITHM: str = "RS256"
    EXPECTED_JWT_ISSUER: str
    EXPECTED_JWT_AUDIENCE: str

    # Anti-forgery tokens handed to the widget
    NONCE_SECRET_KEY: str
    NONCE_TTL_SECONDS: int = 12 * 60 * 60
    UPLOAD_CAPABILITY: str = "upload_files"

    # Temporary storage for chunk sessions, never served to the web
    LOCAL_TEMP_CHUNK_PATH: str = "/tmp/dropzone_chunks"

    # Media library
    PERSISTENT_LOCAL_STORAGE_PATH: str = "/var/data/dropzone_uploads"
    ASSET_INDEX_PATH: str = "/var/data/dropzone_assets"
    UPLOAD_SERVICE_BASE_URL: str = "http://localhost:8000"
    UPLOADS_USE_YEARMONTH_FOLDERS: bool = True

    ALLOWED_UPLOAD_EXTENSIONS: Set[str] = DEFAULT_ALLOWED_EXTENSIONS
    MAX_UPLOAD_SIZE_MB: int = 64
    CHUNK_SIZE_BYTES: int = 2 * 1024 * 1024

    # Reaper for abandoned chunk sessions
    STALE_SESSION_MAX_AGE_SECONDS: int = 24 * 60 * 60
    PURGE_INTERVAL_SECONDS: int = 60 * 60

    CORS_ORIGINS: List[str] = ["*"]
    SERVICE_PORT: int = 8000

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env" if ENV == "local" else None,
        env_file_encoding="utf-8",
    )

    @property
    def max_upload_size_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

settings = Settings()
