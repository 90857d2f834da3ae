from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse
from dropzone_upload.services.upload_service import UploadService, get_upload_service

router = APIRouter()


@router.get("/{relative_path:path}")
async def get_file(
    relative_path: str,
    service: UploadService = Depends(get_upload_service),
):
    """
    GET /files/{relative_path} - Serve a stored media file
    """
    file_path = service.storage.resolve(relative_path)
    if file_path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found.")

    return FileResponse(
        path=file_path,
        headers={"X-Content-Type-Options": "nosniff"},
    )
