import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dropzone_upload.api.endpoints.files import router as files_router
from dropzone_upload.api.endpoints.upload import router as upload_router
from dropzone_upload.api.endpoints.widget import router as widget_router
from dropzone_upload.core.config import settings
from dropzone_upload.core.errors import add_error_handlers
from dropzone_upload.services.reaper import StaleSessionReaper
from dropzone_upload.services.upload_service import get_upload_service

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Dropzone Media Upload Service",
    version="1.0.0",
    openapi_url=None if settings.ENV == "production" else "/openapi.json",
    docs_url=None if settings.ENV == "production" else "/docs",
    redoc_url=None if settings.ENV == "production" else "/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=[
        "Accept",
        "Content-Type",
        "Origin",
        "Authorization",
        "Cache-Control",
        "X-Requested-With",
    ],
)

add_error_handlers(app)

app.include_router(upload_router, prefix="/dropzone", tags=["upload"])
app.include_router(widget_router, prefix="/dropzone", tags=["widget"])
app.include_router(files_router, prefix="/files", tags=["files"])

reaper = StaleSessionReaper(
    get_upload_service().chunk_store,
    max_age_seconds=settings.STALE_SESSION_MAX_AGE_SECONDS,
    interval_seconds=settings.PURGE_INTERVAL_SECONDS,
)


@app.on_event("startup")
async def _startup():
    reaper.start()


@app.on_event("shutdown")
async def _shutdown():
    await reaper.stop()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.SERVICE_PORT)
