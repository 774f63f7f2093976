from collections import defaultdict

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.platform.logger import get_logger
from app.platform.response import api_response

logger = get_logger(__name__)


def field_errors(exc: RequestValidationError) -> dict:
    """Collapse pydantic's error list into {field: [messages]}."""
    errors = defaultdict(list)
    for error in exc.errors():
        # loc looks like ("body", "targetUrl"); the body itself has no field name
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        field = ".".join(loc) or "__root__"
        errors[field].append(error.get("msg", "Invalid value"))
    return dict(errors)


def add_exception_handlers(app):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": field_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
