from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .models import ErrorDetail


class MissingCredentialsError(RuntimeError):
    """Raised when the credentials a login flow needs are not configured."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__("Missing required credentials: " + ", ".join(missing))


class SalesforceError(Exception):
    """Base exception for everything raised by a Salesforce call."""


class NotLoggedInError(SalesforceError):
    """An authenticated call was attempted before login."""

    def __init__(self, message: str = "not logged in") -> None:
        super().__init__(message)


class AuthError(SalesforceError):
    """The token endpoint rejected the credentials or refresh token."""

    def __init__(self, error: str, description: str = "", status: int = 0) -> None:
        self.error = error
        self.description = description
        self.status = status
        super().__init__(f"{error}: {description}" if description else error)


class ApiError(SalesforceError):
    """Salesforce answered with a structured error array."""

    def __init__(self, status: int, url: str, errors: List["ErrorDetail"]) -> None:
        self.status = status
        self.url = url
        self.errors = list(errors)
        summary = "; ".join(f"{e.error_code}: {e.message}" for e in self.errors)
        super().__init__(f"Salesforce error (HTTP {status}) for {url}: {summary}")

    @property
    def error_code(self) -> Optional[str]:
        return self.errors[0].error_code if self.errors else None

    @property
    def message(self) -> Optional[str]:
        return self.errors[0].message if self.errors else None

    @property
    def fields(self) -> List[str]:
        return list(self.errors[0].fields) if self.errors else []


class DecodeError(SalesforceError):
    """A JSON body was received but it matches none of the expected shapes."""


class TransportError(SalesforceError):
    """Network failure, non-JSON body, or an unexpected status with no error array.

    ``status`` is 0 when no HTTP response was received at all.
    """

    def __init__(self, detail: str, *, status: int = 0, url: str = "") -> None:
        self.detail = detail
        self.status = status
        self.url = url
        prefix = f"HTTP {status}" if status else "transport failure"
        super().__init__(f"{prefix} for {url}: {detail}" if url else f"{prefix}: {detail}")


class StreamError(SalesforceError):
    """CometD failure that could not be recovered by following server advice."""
