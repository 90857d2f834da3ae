from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging

logger = logging.getLogger(__name__)


def add_error_handlers(app: FastAPI):
    """Report framework level errors in the same envelope as upload results"""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(f"HTTP error {exc.status_code} on {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "data": str(exc.detail)},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "Invalid request."
        if errors:
            field = ".".join(str(part) for part in errors[0].get("loc", ()))
            message = f"Invalid request: {field}: {errors[0].get('msg')}"
        logger.warning(f"Validation error on {request.url.path}: {message}")
        return JSONResponse(status_code=400, content={"success": False, "data": message})
