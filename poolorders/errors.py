"""
Error taxonomy shared by services and routes. Each error carries the HTTP status it maps to;
main.py registers the handlers that render them as {"message": ...}.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def payload(self) -> dict:
        return {"message": self.message}


class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class Conflict(AppError):
    status_code = 409
    default_message = "Conflict"


class Internal(AppError):
    status_code = 500


class RequirementNotMet(AppError):
    """Raised by the state machine when the target status gate is not satisfied."""
    status_code = 422

    def __init__(self, kind: str, name: str, target: str):
        self.kind = kind
        self.name = name
        self.target = target
        super().__init__(f"Cannot move to {target}: missing {kind} {name}")

    def payload(self) -> dict:
        return {
            "message": self.message,
            "target": self.target,
            "missing": {"kind": self.kind, "name": self.name},
        }


class DocumentMissing(RequirementNotMet):
    def __init__(self, doc_type: str, target: str):
        self.doc_type = doc_type
        super().__init__("document", doc_type, target)


class FieldMissing(RequirementNotMet):
    def __init__(self, field: str, target: str):
        self.field = field
        super().__init__("field", field, target)


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})


async def _unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s error", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal Server Error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unhandled_handler)
