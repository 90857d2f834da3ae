from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse
from pydantic import ValidationError
from dropzone_upload.core.config import settings
from dropzone_upload.core.security import create_nonce, get_optional_actor
from dropzone_upload.schemas.token import Actor
from dropzone_upload.schemas.widget import WidgetConfig
from dropzone_upload.services.widget import render_widget
from typing import Optional

router = APIRouter()


@router.get("/widget", response_class=HTMLResponse)
async def widget(request: Request, actor: Optional[Actor] = Depends(get_optional_actor)):
    """
    GET /dropzone/widget - Render a drop-zone; query parameters are the shortcode attributes
    """
    try:
        config = WidgetConfig.model_validate(dict(request.query_params))
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{field}: {first['msg']}")

    html = render_widget(
        config,
        upload_url=str(request.url_for("upload_media")),
        nonce=create_nonce(actor.user_id) if actor else None,
        logged_in=actor is not None,
        max_file_size_mb=settings.MAX_UPLOAD_SIZE_MB,
        chunk_size=settings.CHUNK_SIZE_BYTES,
    )
    return HTMLResponse(html)
