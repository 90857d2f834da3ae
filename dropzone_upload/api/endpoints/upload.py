from fastapi import APIRouter, Depends, UploadFile, File, Form
from fastapi.responses import JSONResponse
from dropzone_upload.core.exceptions import Forbidden
from dropzone_upload.core.security import create_nonce, get_optional_actor
from dropzone_upload.schemas.token import Actor, NonceResponse
from dropzone_upload.schemas.upload import IncomingFilePart, UploadRequest, UploadResult
from dropzone_upload.services.upload_service import UploadService, get_upload_service
from typing import Optional
import os

router = APIRouter()


def _incoming_part(upload: UploadFile) -> IncomingFilePart:
    upload.file.seek(0, os.SEEK_END)
    size = upload.file.tell()
    upload.file.seek(0)
    return IncomingFilePart(
        filename=upload.filename or "",
        content_type=upload.content_type or "",
        stream=upload.file,
        size=size,
    )


def _respond(result: UploadResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.model_dump(mode="json"))


@router.post("/upload")
async def upload_media(
    nonce: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    dzuuid: Optional[str] = Form(None),
    dzchunkindex: Optional[str] = Form(None),
    dztotalchunkcount: Optional[str] = Form(None),
    dzchunkbyteoffset: Optional[str] = Form(None),
    origtype: Optional[str] = Form(None),
    actor: Optional[Actor] = Depends(get_optional_actor),
    service: UploadService = Depends(get_upload_service),
):
    """
    POST /dropzone/upload - Upload a whole file or one chunk of it
    """
    request = UploadRequest(
        nonce=nonce,
        file=_incoming_part(file) if file is not None else None,
        dzuuid=dzuuid,
        dzchunkindex=dzchunkindex,
        dztotalchunkcount=dztotalchunkcount,
        dzchunkbyteoffset=dzchunkbyteoffset,
        origtype=origtype,
    )
    try:
        result = await service.handle(request, actor)
    finally:
        if file is not None:
            await file.close()
    return _respond(result)


@router.get("/nonce", response_model=NonceResponse)
async def issue_nonce(actor: Optional[Actor] = Depends(get_optional_actor)):
    """
    GET /dropzone/nonce - Anti-forgery token for the current actor
    """
    if actor is None:
        return _respond(UploadResult.failed(Forbidden()))
    return NonceResponse(data=create_nonce(actor.user_id))
