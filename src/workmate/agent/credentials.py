"""Credential providers: where the caller's per-provider access tokens come from."""

import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Dict,
)

from workmate.core.schema import CredentialSet

logger = logging.getLogger(__name__)


class CredentialProvider(ABC):
    """Returns the caller's tokens; absent tokens are ``None``, never an exception."""

    @abstractmethod
    def get_credentials(self, request: Any) -> CredentialSet:
        """Extract a :class:`CredentialSet` from *request*."""


class HeaderCredentialProvider(CredentialProvider):
    """
    Reads bearer tokens from request headers, falling back to cookies.

    ``X-Google-Access-Token`` / ``google_access_token`` and
    ``X-Microsoft-Access-Token`` / ``microsoft_access_token``.
    """

    HEADERS: Dict[str, str] = {
        "google_access_token": "X-Google-Access-Token",
        "microsoft_access_token": "X-Microsoft-Access-Token",
    }

    def get_credentials(self, request: Any) -> CredentialSet:
        tokens: Dict[str, str | None] = {}
        try:
            for field, header in self.HEADERS.items():
                tokens[field] = self._clean(request.headers.get(header)) or self._clean(
                    request.cookies.get(field)
                )
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Could not read credentials from request: %s", exc)
            return CredentialSet()
        return CredentialSet(**tokens)

    @staticmethod
    def _clean(value: str | None) -> str | None:
        if not value:
            return None
        value = value.strip()
        if value.lower().startswith("bearer "):
            value = value[7:].strip()
        return value or None
