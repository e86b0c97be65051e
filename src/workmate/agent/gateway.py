"""Routes tool calls to provider executors and injects the caller's credential."""

import logging
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Sequence,
)

from workmate.core.errors import (
    MissingCredentialError,
    ToolExecutionError,
)
from workmate.core.schema import (
    ToolDeclaration,
    ToolResult,
)
from workmate.providers.base import BaseProviderExecutor

logger = logging.getLogger(__name__)


class ToolGateway:
    """
    Provider-agnostic façade over the executors.

    The gateway holds nothing but the provider name -> executor map it was built with.
    """

    def __init__(self, executors: Mapping[str, BaseProviderExecutor]) -> None:
        self._executors: Dict[str, BaseProviderExecutor] = dict(executors)

    @property
    def providers(self) -> List[str]:
        return list(self._executors)

    def list_tools(self, providers: Iterable[str]) -> List[ToolDeclaration]:
        """Declarations of every requested provider; failures are logged and skipped."""
        declarations: List[ToolDeclaration] = []
        for provider in providers:
            executor = self._executors.get(provider)
            if executor is None:
                logger.warning("No executor for provider '%s'; skipping its tools", provider)
                continue
            try:
                declarations.extend(executor.declarations())
            except Exception as exc:  # pylint: disable=broad-except
                logger.error("Listing tools for '%s' failed: %s", provider, exc)
        return declarations

    @staticmethod
    def find_tool(name: str | None, offered: Sequence[ToolDeclaration]) -> ToolDeclaration | None:
        """The offered declaration called *name*, if any."""
        if not name:
            return None
        return next((decl for decl in offered if decl.name == name), None)

    async def call_tool(
        self,
        provider: str,
        tool_name: str,
        args: Mapping[str, Any] | None,
        credential: str | None,
    ) -> ToolResult:
        """
        Dispatch *tool_name* to the executor of *provider*.

        Raises
        ------
        MissingCredentialError
            If *credential* is empty.
        ToolExecutionError
            If *provider* has no executor.
        ProviderError
            Propagated unchanged from the executor.
        """
        if not credential:
            raise MissingCredentialError(provider)
        executor = self._executors.get(provider)
        if executor is None:
            raise ToolExecutionError(f"Provider '{provider}' is not available.")
        logger.info("Calling %s.%s", provider, tool_name)
        return await executor.execute(tool_name, args, credential)
