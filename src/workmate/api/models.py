"""
Pydantic models for Workmate API requests and responses.

Responses reuse :class:`~workmate.core.schema.ChatOutcome`; only the request shapes and the
status payload live here.
"""

from typing import (
    Dict,
    List,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)
from pydantic.alias_generators import to_camel

from workmate.core.schema import ConversationTurn


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class ChatRequest(BaseModel):
    """Incoming user message with the client-held conversation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str = Field("", description="User message for Workmate")
    conversation_history: List[ConversationTurn] = Field(
        default_factory=list, description="Prior turns, oldest first"
    )


class DomainStatus(BaseModel):
    """Connection state of one capability domain."""

    provider: str
    connected: bool
    tools: List[str]


class StatusResponse(BaseModel):
    """Which domains the caller can use right now."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    domains: Dict[str, DomainStatus]
    available_tools: List[str]
