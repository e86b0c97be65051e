"""
Exception hierarchy shared by the executors, the gateway and the orchestration loop.

Provider failures carry an :class:`ErrorCategory` so the loop can pick a user-facing message
without parsing strings.
"""

from enum import Enum
from typing import (
    List,
    Sequence,
)


class ErrorCategory(str, Enum):
    """Why a provider call failed."""

    AUTH_EXPIRED = "auth_expired"
    RATE_LIMITED = "rate_limited"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    INVALID_REQUEST = "invalid_request"
    TRANSIENT = "transient"
    VALIDATION = "missing_information"
    UNKNOWN = "provider_error"


class WorkmateError(Exception):
    """Base exception for everything raised by this package."""


class ProviderError(WorkmateError):
    """Raised by a provider executor when a tool call cannot be completed.

    The message is already phrased for the end user.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.provider = provider
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Whether the failure is worth another attempt."""
        return self.category in (ErrorCategory.RATE_LIMITED, ErrorCategory.TRANSIENT)


class ToolValidationError(ProviderError):
    """Raised before any network call when tool arguments are missing or malformed."""

    def __init__(
        self, message: str, fields: Sequence[str] = (), provider: str | None = None
    ) -> None:
        super().__init__(message, ErrorCategory.VALIDATION, provider=provider)
        self.fields: List[str] = list(fields)


class EntityNotFoundError(ProviderError):
    """Raised when a human-friendly identifier matches nothing the provider knows about."""

    def __init__(
        self,
        term: str,
        kind: str,
        alternatives: Sequence[str] = (),
        provider: str | None = None,
    ) -> None:
        message = f'No {kind} matching "{term}" was found.'
        if alternatives:
            message += " Known " + kind + "s: " + ", ".join(alternatives[:10]) + "."
        super().__init__(message, ErrorCategory.NOT_FOUND, provider=provider, status_code=404)
        self.term = term
        self.kind = kind
        self.alternatives = list(alternatives)


class LLMError(WorkmateError):
    """Raised when a language-model backend fails after its retries."""


class ToolExecutionError(WorkmateError):
    """Raised when a requested tool cannot be routed to an executor."""


class MissingCredentialError(ToolExecutionError):
    """Raised when a tool call is dispatched without a credential for its provider."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"No credential available for provider '{provider}'.")
        self.provider = provider
