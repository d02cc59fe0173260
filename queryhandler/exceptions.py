"""Exceptions for the query handling, and their translation into HTTP status codes.

All exceptions raised while translating the request carry a ``name``,
which is what the error classifier uses to pick an HTTP status code.
The classifier is the only place where that mapping happens.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.core.exceptions import ObjectDoesNotExist, PermissionDenied, ValidationError
from django.db import IntegrityError

INTERNAL_ERROR = "InternalError"
DEFAULT_MESSAGE = "An unexpected error has occurred."

#: The HTTP status for each known error name.
#: Anything not listed here becomes a HTTP 500.
STATUS_BY_NAME = {
    "CastError": 400,
    "ValidationError": 400,
    "ArgumentError": 400,
    "ArgumentNullError": 400,
    "RangeError": 400,
    "TypeError": 400,
    "AuthenticationRequiredError": 401,
    "NotPermittedError": 403,
    "NotFoundError": 404,
    "NotSupportedError": 415,
    "MongoError": 409,
    "AlreadyInUseError": 409,
}

#: Django exceptions that have an equivalent in our naming.
DJANGO_ERROR_NAMES = (
    (PermissionDenied, "NotPermittedError"),
    (ObjectDoesNotExist, "NotFoundError"),
    (IntegrityError, "AlreadyInUseError"),
)


class QueryHandlerError(Exception):
    """Base class for all errors that are reported to the client."""

    #: The name used for classification, defaults to the class name.
    name = None
    #: An explicit status code, otherwise it's derived from the name.
    status_code = None
    default_message = None

    def __init__(self, message=None, errors=None, status_code=None):
        message = message or self.default_message or ""
        super().__init__(message)
        self.message = message
        self.errors = errors
        if status_code is not None:
            self.status_code = status_code
        if self.name is None:
            self.name = self.__class__.__name__


class ParseError(QueryHandlerError):
    """Structured input (e.g. JSON) could not be parsed."""

    default_message = "The input could not be parsed."


class ArgumentError(QueryHandlerError):
    """A value provided by the client is not allowed."""

    default_message = "Invalid argument."


class ArgumentNullError(QueryHandlerError):
    """A required value was not provided."""

    def __init__(self, argument_name, errors=None, status_code=None):
        super().__init__(f"Missing argument: {argument_name}", errors, status_code)
        self.argument_name = argument_name


class RangeError(QueryHandlerError):
    """A numeric value is outside the allowed bounds."""


class InvalidTypeError(QueryHandlerError):
    """A value can't be interpreted as the required type."""

    name = "TypeError"


class NotSupportedError(QueryHandlerError):
    """The requested media type has no registered handler."""


class NotFoundError(QueryHandlerError):
    default_message = "Not Found"


class URIError(QueryHandlerError):
    """A redirect target is not a valid absolute URL."""


class AuthenticationRequiredError(QueryHandlerError):
    default_message = "Authentication is required."


class NotPermittedError(QueryHandlerError):
    default_message = "You do not have permission to perform this action."


class AlreadyInUseError(QueryHandlerError):
    default_message = "The resource is already in use."


class UploadFileNotFoundError(QueryHandlerError):
    """The uploaded file could not be read."""

    name = "FileNotFoundError"

    def __init__(self, path, errors=None, status_code=None):
        super().__init__(f"File not found: {path}", errors, status_code)
        self.path = path


class ResponseAlreadyWritten(RuntimeError):
    """Raised when a second response is written for the same request."""


@dataclass
class ErrorRecord:
    """The normalized error, as it's shown to clients."""

    name: str
    message: str
    status: int
    errors: list | dict | None = None

    def as_dict(self) -> dict:
        """Provide the JSON/template representation."""
        data = {"name": self.name, "message": self.message, "status": self.status}
        if self.errors is not None:
            data["errors"] = self.errors
        return data


def get_error_name(exc: BaseException) -> str:
    """Tell which name the exception is classified by."""
    if isinstance(exc, QueryHandlerError):
        return exc.name or INTERNAL_ERROR

    for exc_class, name in DJANGO_ERROR_NAMES:
        if isinstance(exc, exc_class):
            return name

    return exc.__class__.__name__


def get_error_status(name: str) -> int:
    """Translate the error name into an HTTP status code."""
    return STATUS_BY_NAME.get(name, 500)


def classify_error(exc: BaseException) -> ErrorRecord:
    """Normalize any exception into an :class:`ErrorRecord`."""
    name = get_error_name(exc)
    errors = None
    if isinstance(exc, QueryHandlerError):
        message = exc.message
        errors = exc.errors
        status = exc.status_code
    elif isinstance(exc, ValidationError):
        message = ", ".join(exc.messages)
        errors = exc.message_dict if hasattr(exc, "error_dict") else exc.messages
        status = None
    else:
        message = str(exc)
        status = None

    return ErrorRecord(
        name=name,
        message=message or DEFAULT_MESSAGE,
        status=status or get_error_status(name),
        errors=errors,
    )
