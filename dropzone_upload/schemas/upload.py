from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field
from typing import Any, BinaryIO, Dict, Optional, Union

from dropzone_upload.core.exceptions import UploadError


class ChunkStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"


class UploadSession(BaseModel):
    """State of one chunked upload, persisted next to its temp file."""
    session_key: str
    filename: str
    content_type: str = ""
    total_chunks: int = 0
    last_chunk_index: int = 0
    received_bytes: int = 0
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def is_new(self) -> bool:
        return self.last_chunk_index == 0


@dataclass
class IncomingFilePart:
    """One received file part. The declared name and type are hints only."""
    filename: str
    content_type: str
    stream: BinaryIO
    size: Optional[int] = None


@dataclass
class UploadRequest:
    """The form fields of one request to the upload endpoint, unparsed."""
    nonce: Optional[str] = None
    file: Optional[IncomingFilePart] = None
    dzuuid: Optional[str] = None
    dzchunkindex: Optional[str] = None
    dztotalchunkcount: Optional[str] = None
    dzchunkbyteoffset: Optional[str] = None
    origtype: Optional[str] = None

    @property
    def is_chunked(self) -> bool:
        return self.dzuuid is not None


class StoredFile(BaseModel):
    path: str
    relative_path: str
    url: str
    filename: str
    mime_type: str
    size: int


class AssetCreate(BaseModel):
    guid: str
    title: str
    mime_type: str
    status: str = "inherit"
    content: str = ""


class MediaAsset(BaseModel):
    id: str
    title: str
    mime_type: str
    status: str
    url: str
    relative_path: str
    created_at: datetime = Field(default_factory=datetime.now)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ChunkUploadedData(BaseModel):
    chunk_uploaded: bool = True


class UploadResult(BaseModel):
    success: bool
    data: Union[str, ChunkUploadedData]
    status_code: int = Field(default=200, exclude=True)

    @classmethod
    def chunk_accepted(cls) -> "UploadResult":
        return cls(success=True, data=ChunkUploadedData())

    @classmethod
    def stored(cls, url: str) -> "UploadResult":
        return cls(success=True, data=url)

    @classmethod
    def failed(cls, error: UploadError) -> "UploadResult":
        return cls(success=False, data=error.message, status_code=error.status_code)
