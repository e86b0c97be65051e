"""
Base class for provider executors.

An executor owns one external integration.  Subclasses declare a coroutine per tool with
:func:`handles`; the base class builds the static name -> handler map when the subclass is
created and refuses subclasses whose handlers and declarations disagree.  Every call goes through
the same pipeline::

    validate args -> handler -> (_request: attempt -> backoff/retry | translate) -> ToolResult
"""

import hashlib
import logging
from abc import ABC
from typing import (
    Any,
    Awaitable,
    Callable,
    ClassVar,
    Dict,
    Mapping,
    TypeVar,
)
from urllib.parse import quote

import httpx

from workmate.config import settings
from workmate.core.errors import (
    ErrorCategory,
    MissingCredentialError,
    ProviderError,
    ToolExecutionError,
)
from workmate.core.schema import (
    ToolDeclaration,
    ToolResult,
)
from workmate.providers.cache import TTLCache
from workmate.providers.retry import (
    RETRYABLE_EXCEPTIONS,
    RetryPolicy,
    categorize_status,
)
from workmate.tools import (
    TOOL_REGISTRY,
    get_declaration,
    get_declarations,
    validate_arguments,
)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def handles(tool_name: str) -> Callable[[F], F]:
    """Mark an executor coroutine as the handler of *tool_name*."""

    def wrapper(fn: F) -> F:
        fn.__tool_name__ = tool_name  # type: ignore[attr-defined]
        return fn

    return wrapper


def path_segment(value: Any) -> str:
    """Percent-encode an identifier for use inside a URL path."""
    return quote(str(value), safe="@:.")


# ---------------------------------------------------------------------------
# Base executor
# ---------------------------------------------------------------------------
class BaseProviderExecutor(ABC):
    """Shared retry, cache, validation and dispatch logic."""

    PROVIDER: ClassVar[str] = ""
    DISPLAY_NAME: ClassVar[str] = ""
    ERROR_MESSAGES: ClassVar[Mapping[ErrorCategory, str]] = {}
    _HANDLERS: ClassVar[Dict[str, str]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        handlers: Dict[str, str] = {}
        for klass in reversed(cls.__mro__):
            for attr, value in vars(klass).items():
                tool_name = getattr(value, "__tool_name__", None)
                if tool_name:
                    handlers[tool_name] = attr
        if not cls.PROVIDER:
            return

        declared = set(TOOL_REGISTRY.get(cls.PROVIDER, {}))
        undeclared = sorted(set(handlers) - declared)
        if undeclared:
            raise TypeError(f"{cls.__name__} handles undeclared tool(s): {', '.join(undeclared)}")
        unhandled = sorted(declared - set(handlers))
        if unhandled:
            raise TypeError(f"{cls.__name__} has no handler for: {', '.join(unhandled)}")
        cls._HANDLERS = handlers

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        retry: RetryPolicy | None = None,
        cache: TTLCache | None = None,
        timeout: float | None = None,
    ) -> None:
        self._client = client
        self.base_url = base_url.rstrip("/")
        self.retry = retry or RetryPolicy()
        self.cache = cache or TTLCache(settings.CACHE_TTL_SECONDS)
        self.timeout = settings.PROVIDER_TIMEOUT if timeout is None else timeout

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @classmethod
    def tool_names(cls) -> list[str]:
        """Names of the tools this executor can run."""
        return list(cls._HANDLERS)

    def declarations(self) -> list[ToolDeclaration]:
        """Declarations of every tool of this provider."""
        return get_declarations(self.PROVIDER)

    async def execute(
        self, tool_name: str, args: Mapping[str, Any] | None, access_token: str | None
    ) -> ToolResult:
        """
        Validate *args* and run the handler of *tool_name*.

        Raises
        ------
        ToolExecutionError
            If the tool isn't handled by this executor.
        MissingCredentialError
            If *access_token* is empty.
        ProviderError
            For validation failures (``ToolValidationError``), unresolvable entities and HTTP
            failures.
        """
        method_name = self._HANDLERS.get(tool_name)
        declaration = get_declaration(self.PROVIDER, tool_name)
        if method_name is None or declaration is None:
            raise ToolExecutionError(f"Tool '{tool_name}' is not provided by '{self.PROVIDER}'.")
        if not access_token:
            raise MissingCredentialError(self.PROVIDER)

        cleaned = validate_arguments(declaration, args)
        logger.debug("Executing %s.%s with args=%s", self.PROVIDER, tool_name, cleaned)
        payload = await getattr(self, method_name)(cleaned, access_token)
        return ToolResult.from_payload(payload)

    # ------------------------------------------------------------------
    # HTTP with retry
    # ------------------------------------------------------------------
    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        """Perform one logical API call, retrying transient failures."""
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {token}"}
        label = f"{method} {path}"

        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._client.request(
                    method, url, params=params, json=json, headers=headers, timeout=self.timeout
                )
            except RETRYABLE_EXCEPTIONS as exc:
                category = ErrorCategory.TRANSIENT
                if self.retry.should_retry(category, attempt):
                    await self.retry.backoff(category, attempt, label)
                    continue
                logger.error("%s failed after %d attempt(s): %s", label, attempt, exc)
                raise self._error(category, str(exc)) from exc

            if response.is_success:
                if response.status_code == 204 or not response.content:
                    return {}
                try:
                    return response.json()
                except ValueError as exc:
                    logger.error("%s returned a non-JSON body: %s", label, response.text[:200])
                    raise self._error(
                        ErrorCategory.UNKNOWN, "unreadable response", response.status_code
                    ) from exc

            category = categorize_status(response.status_code)
            if self.retry.should_retry(category, attempt):
                await self.retry.backoff(category, attempt, label)
                continue

            if category == ErrorCategory.AUTH_EXPIRED:
                self.cache.invalidate()
            detail = self._error_detail(response)
            logger.warning(
                "%s -> HTTP %d (%s): %s", label, response.status_code, category.value, detail
            )
            raise self._error(category, detail, response.status_code)

    def _error(
        self, category: ErrorCategory, detail: str = "", status_code: int | None = None
    ) -> ProviderError:
        template = self.ERROR_MESSAGES.get(category) or self.ERROR_MESSAGES.get(
            ErrorCategory.UNKNOWN, "{detail}"
        )
        message = template.format(detail=detail or "unknown error", provider=self.DISPLAY_NAME)
        return ProviderError(message, category, provider=self.PROVIDER, status_code=status_code)

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return str(error.get("message") or error.get("code") or "")
        if isinstance(error, str):
            return body.get("error_description") or error
        return response.text[:200]

    # ------------------------------------------------------------------
    # Cache helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _cache_key(name: str, token: str) -> str:
        # Entries are scoped to the caller so one user's data never answers another's request.
        digest = hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]
        return f"{name}:{digest}"

    async def _cached(self, name: str, token: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        key = self._cache_key(name, token)
        value = self.cache.get(key)
        if value is not None:
            logger.debug("Cache hit: %s.%s", self.PROVIDER, name)
            return value
        value = await loader()
        self.cache.set(key, value)
        return value

    def _invalidate(self, name: str, token: str) -> None:
        self.cache.invalidate(self._cache_key(name, token))
