"""
Errors raised while handling an upload request.

Every error carries the HTTP status and the message shown next to the failed
file in the widget. The upload service turns them into a failure result at
its boundary, so none of them reach the client as an unhandled fault.
"""
from typing import Optional


class UploadError(Exception):
    status_code: int = 400
    default_message: str = "Upload failed."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthorized(UploadError):
    """The anti-forgery token is missing or invalid."""
    status_code = 403
    default_message = "Security check failed."


class Forbidden(UploadError):
    """The actor is unknown or lacks the upload capability."""
    status_code = 403
    default_message = "Sorry, you are not allowed to upload files."


class MissingFile(UploadError):
    status_code = 400
    default_message = "No file to upload."


class DisallowedExtension(UploadError):
    status_code = 400
    default_message = "Sorry, you are not allowed to upload this file type."


class MalformedSession(UploadError):
    """Chunk parameters are missing or inconsistent with the session."""
    status_code = 400
    default_message = "Invalid chunked upload request."


class UploadTooLarge(UploadError):
    status_code = 413
    default_message = "The uploaded file exceeds the maximum upload size."


class StorageIOError(UploadError):
    status_code = 500
    default_message = "The uploaded file could not be stored."
