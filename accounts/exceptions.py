"""
Typed exceptions raised by the user service.

Every exception here carries an HTTP status and a list of field-level
errors, so a single handler can turn any of them into an error response
(see ``accounts.web.errors``).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterable, Optional


@dataclass(frozen=True)
class FieldError:
    """A problem with a single input field."""

    field: Optional[str]
    code: Optional[str]
    message: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class MultiErrorException(Exception):
    """
    An exception carrying an HTTP status and a list of field errors.

    Can be used as a collector:

        ex = MultiErrorException()
        ex.validate(bool(name), "name", "Name required")
        ex.validate(len(password) >= 6, "password", "Password too short")
        ex.go()  # raises if anything was collected
    """

    default_status = 422
    default_message = "Validation error"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[Iterable[FieldError]] = None,
        status: Optional[int] = None,
    ):
        self.message = message or self.default_message
        self.status = status or self.default_status
        self.errors: list[FieldError] = list(errors or [])
        super().__init__(self.message)

    def validate(
        self, valid: Any, field: Optional[str], message: str, code: Optional[str] = None
    ) -> "MultiErrorException":
        """Record an error for ``field`` unless ``valid`` is truthy."""
        if not valid:
            self.errors.append(FieldError(field, code or f"{field}.invalid", message))
        return self

    def has_errors(self) -> bool:
        return bool(self.errors)

    def go(self) -> None:
        """Raise this exception if any error has been collected."""
        if self.has_errors():
            if self.message == self.default_message and len(self.errors) == 1:
                self.message = self.errors[0].message
                self.args = (self.message,)
            raise self

    def __str__(self) -> str:
        if not self.errors:
            return self.message
        details = "; ".join(f"{e.field}: {e.message}" for e in self.errors)
        return f"{self.message} ({details})"


class NotFoundException(MultiErrorException):
    default_status = 404
    default_message = "Not found"


class ForbiddenException(MultiErrorException):
    default_status = 403
    default_message = "Forbidden"


class UnauthorizedException(MultiErrorException):
    default_status = 401
    default_message = "Unauthorized"


class VersionException(MultiErrorException):
    """Raised when an entity was modified by someone else in the meantime."""

    default_status = 409
    default_message = "Concurrent modification"

    def __init__(self, entity: str, entity_id: Any = None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} {entity_id} was modified by another request. Reload and try again."
        )


# ==================== HELPERS ====================


def validate(valid: Any, field: Optional[str], message: str, code: Optional[str] = None) -> MultiErrorException:
    """Start an error collection with a single check. Call ``go()`` to raise."""
    return MultiErrorException().validate(valid, field, message, code)


def ensure_found(obj: Any, message: str = "Not found") -> Any:
    """Raise NotFoundException if ``obj`` is None."""
    if obj is None:
        raise NotFoundException(message)
    return obj


def ensure_credentials(valid: Any, message: str = "Bad credentials") -> None:
    """Raise UnauthorizedException unless ``valid`` is truthy."""
    if not valid:
        raise UnauthorizedException(message)


def ensure_authority(valid: Any, message: str = "Not authorized") -> None:
    """Raise ForbiddenException unless ``valid`` is truthy."""
    if not valid:
        raise ForbiddenException(message)
