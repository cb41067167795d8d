"""
Translation of exceptions into HTTP error responses.

Each ``ExceptionHandler`` knows how to read a status, a message and field
errors off one exception type. The ``ErrorResponseComposer`` keeps the
handlers sorted by precedence and uses the first one that matches the
raised exception, so a handler for a subclass wins over the catch-all
``MultiErrorExceptionHandler``.
"""

from __future__ import annotations

import logging
import sys
from http import HTTPStatus
from typing import Generic, Iterable, Optional, TypeVar

import jsonpatch
import jsonpointer
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from accounts.exceptions import FieldError, MultiErrorException, VersionException
from accounts.web.schemas import ErrorResponse, FieldErrorModel

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=BaseException)

HIGHEST_PRECEDENCE = -sys.maxsize
LOWEST_PRECEDENCE = sys.maxsize


def reason_phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Error"


class ExceptionHandler(Generic[E]):
    """Base class for handlers that turn an exception into an ErrorResponse."""

    exception_class: type = Exception
    order: int = 0

    def __init__(self, exception_id: Optional[str] = None):
        self.exception_id = exception_id or self.exception_class.__name__
        logger.info(f"Created {type(self).__name__}")

    def handles(self, ex: BaseException) -> bool:
        return isinstance(ex, self.exception_class)

    def get_exception_id(self, ex: E) -> str:
        return self.exception_id

    def get_message(self, ex: E) -> str:
        return str(ex)

    def get_status(self, ex: E) -> int:
        return 400

    def get_errors(self, ex: E) -> Iterable[FieldError]:
        return []

    def handle(self, ex: E) -> ErrorResponse:
        status = self.get_status(ex)
        return ErrorResponse(
            exception_id=self.get_exception_id(ex),
            error=reason_phrase(status),
            message=self.get_message(ex),
            status=status,
            errors=[
                FieldErrorModel(field=e.field, code=e.code, message=e.message)
                for e in self.get_errors(ex)
            ],
        )


class MultiErrorExceptionHandler(ExceptionHandler[MultiErrorException]):
    """Fallback for every MultiErrorException without a dedicated handler."""

    exception_class = MultiErrorException
    order = LOWEST_PRECEDENCE

    def get_message(self, ex: MultiErrorException) -> str:
        return ex.message

    def get_status(self, ex: MultiErrorException) -> int:
        return ex.status

    def get_errors(self, ex: MultiErrorException) -> Iterable[FieldError]:
        return ex.errors


class VersionExceptionHandler(ExceptionHandler[VersionException]):
    exception_class = VersionException

    def get_message(self, ex: VersionException) -> str:
        return ex.message

    def get_status(self, ex: VersionException) -> int:
        return 409


class RequestValidationErrorHandler(ExceptionHandler[RequestValidationError]):
    """Request body/query validation failures, one field error per problem."""

    exception_class = RequestValidationError

    _location_prefixes = ("body", "query", "path", "form", "header", "cookie")

    def get_message(self, ex: RequestValidationError) -> str:
        return "Validation error"

    def get_status(self, ex: RequestValidationError) -> int:
        return 422

    def get_errors(self, ex: RequestValidationError) -> Iterable[FieldError]:
        errors = []
        for error in ex.errors():
            loc = list(error.get("loc", ()))
            if loc and loc[0] in self._location_prefixes:
                loc = loc[1:]
            field = ".".join(str(part) for part in loc) or None
            errors.append(FieldError(field, error.get("type"), error.get("msg", "Invalid value")))
        return errors


class HTTPExceptionHandler(ExceptionHandler[StarletteHTTPException]):
    exception_class = StarletteHTTPException
    order = LOWEST_PRECEDENCE - 1

    def get_message(self, ex: StarletteHTTPException) -> str:
        return str(ex.detail)

    def get_status(self, ex: StarletteHTTPException) -> int:
        return ex.status_code


class JsonPatchExceptionHandler(ExceptionHandler[Exception]):
    """A patch that isn't valid JSON Patch or doesn't apply to the document."""

    exception_class = jsonpatch.JsonPatchException

    def handles(self, ex: BaseException) -> bool:
        return isinstance(ex, (jsonpatch.JsonPatchException, jsonpointer.JsonPointerException))

    def get_status(self, ex: Exception) -> int:
        return 422

    def get_errors(self, ex: Exception) -> Iterable[FieldError]:
        return [FieldError("patch", "patch.invalid", str(ex))]


class ErrorResponseComposer:
    """Picks the handler for an exception and builds the error response."""

    def __init__(self, handlers: Iterable[ExceptionHandler]):
        self.handlers = sorted(handlers, key=lambda h: h.order)
        logger.info("Created")

    def compose(self, ex: BaseException) -> Optional[ErrorResponse]:
        for handler in self.handlers:
            if handler.handles(ex):
                return handler.handle(ex)
        return None


def default_handlers() -> list[ExceptionHandler]:
    return [
        MultiErrorExceptionHandler(),
        VersionExceptionHandler(),
        RequestValidationErrorHandler(),
        HTTPExceptionHandler(),
        JsonPatchExceptionHandler(),
    ]


def register_exception_handlers(app: FastAPI, composer: Optional[ErrorResponseComposer] = None) -> ErrorResponseComposer:
    """Route the exceptions the composer knows about through it."""
    composer = composer or ErrorResponseComposer(default_handlers())

    async def handle(request: Request, ex: Exception) -> JSONResponse:
        error = composer.compose(ex)
        if error is None:
            raise ex

        if error.status >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {ex}")
        else:
            logger.debug(f"{request.method} {request.url.path} -> {error.status}: {error.message}")

        headers = getattr(ex, "headers", None)
        return JSONResponse(error.model_dump(), status_code=error.status, headers=headers)

    for exception_class in (
        MultiErrorException,
        RequestValidationError,
        StarletteHTTPException,
        jsonpatch.JsonPatchException,
        jsonpointer.JsonPointerException,
    ):
        app.add_exception_handler(exception_class, handle)

    return composer
