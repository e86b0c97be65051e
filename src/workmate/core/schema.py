"""
Schema definitions for planner <-> orchestrator <-> executor messages.

These data models serve as the contract between the planner LLM, the orchestration loop, the
tool gateway and the provider executors.  We keep them separate from runtime logic so they can be
imported anywhere without side-effects.

Every model serializes in camelCase (the wire format of the chat frontend) and accepts
snake_case field names on input.
"""

import json
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

# Classifier domain -> provider executor name
DOMAIN_PROVIDERS: Dict[str, str] = {"email": "gmail", "teams": "teams"}

# Provider executor name -> human readable sign-in target
PROVIDER_DISPLAY_NAMES: Dict[str, str] = {"gmail": "Google", "teams": "Microsoft"}

# Provider executor name -> CredentialSet field
PROVIDER_CREDENTIAL_FIELDS: Dict[str, str] = {
    "gmail": "google_access_token",
    "teams": "microsoft_access_token",
}


class WireModel(BaseModel):
    """Base model using camelCase aliases on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Tool declarations
# ---------------------------------------------------------------------------
class ToolParameter(WireModel):
    """One entry of a tool's parameter spec."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    type: Literal["string", "number", "integer", "boolean", "array"] = "string"
    description: str = ""
    required: bool = False
    enum: Optional[List[Any]] = None
    default: Any = None
    items: Optional[str] = None  # element type for arrays


class ToolDeclaration(WireModel):
    """Immutable description of a tool a provider exposes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    name: str
    description: str
    provider: str
    parameters: List[ToolParameter] = Field(default_factory=list)
    mutating: bool = False

    def required_fields(self) -> List[str]:
        """Names of the parameters that must be present and non-empty."""
        return [p.name for p in self.parameters if p.required]

    def parameter(self, name: str) -> ToolParameter | None:
        """Return the parameter called *name*, if declared."""
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def to_json_schema(self) -> Dict[str, Any]:
        """Render the parameter spec as a JSON-Schema object."""
        properties: Dict[str, Any] = {}
        for param in self.parameters:
            prop: Dict[str, Any] = {"type": param.type, "description": param.description}
            if param.enum:
                prop["enum"] = list(param.enum)
            if param.default is not None:
                prop["default"] = param.default
            if param.type == "array":
                prop["items"] = {"type": param.items or "string"}
            properties[param.name] = prop
        return {"type": "object", "properties": properties, "required": self.required_fields()}


# ---------------------------------------------------------------------------
# Planner decisions
# ---------------------------------------------------------------------------
class ToolCallDecision(WireModel):
    """What the planner wants the orchestrator to do for one step."""

    needs_tool: bool = False
    tool_name: Optional[str] = None
    tool_args: Dict[str, Any] = Field(default_factory=dict)
    reasoning: str = ""
    requires_next_step: bool = False
    next_step_description: Optional[str] = None
    response: Optional[str] = None  # direct answer when no tool is needed

    @field_validator("tool_args", mode="before")
    @classmethod
    def _none_args(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("reasoning", mode="before")
    @classmethod
    def _none_reasoning(cls, value: Any) -> Any:
        return "" if value is None else value


# ---------------------------------------------------------------------------
# Tool results
# ---------------------------------------------------------------------------
class ContentSegment(WireModel):
    """A single piece of tool output."""

    type: str = "text"
    text: Optional[str] = None
    data: Optional[str] = None
    mime_type: Optional[str] = None


class ToolResult(WireModel):
    """Normalized envelope returned by every provider executor."""

    content: List[ContentSegment] = Field(default_factory=list)
    is_error: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "ToolResult":
        """Wrap a JSON-able payload as one pretty-printed text segment."""
        text = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
        return cls(content=[ContentSegment(type="text", text=text)])

    @classmethod
    def error(cls, message: str) -> "ToolResult":
        """Build an error envelope."""
        return cls(content=[ContentSegment(type="text", text=f"Error: {message}")], is_error=True)

    def text(self) -> str:
        """Join all text segments."""
        return "\n".join(seg.text for seg in self.content if seg.type == "text" and seg.text)

    def data(self) -> Any:
        """Return the decoded JSON payload, or the raw text when it isn't JSON."""
        raw = self.text()
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            return raw


# ---------------------------------------------------------------------------
# Credentials and conversation
# ---------------------------------------------------------------------------
class CredentialSet(WireModel):
    """Per-request bearer tokens, owned by the caller."""

    google_access_token: Optional[str] = None
    microsoft_access_token: Optional[str] = None

    def for_provider(self, provider: str) -> str | None:
        """Return the token for *provider*, or ``None`` when the caller isn't signed in."""
        field = PROVIDER_CREDENTIAL_FIELDS.get(provider)
        if field is None:
            return None
        return getattr(self, field) or None

    def connected_providers(self) -> List[str]:
        """Providers for which a token is present."""
        return [name for name in PROVIDER_CREDENTIAL_FIELDS if self.for_provider(name)]


class ConversationTurn(WireModel):
    """A prior turn supplied by the chat frontend."""

    role: Literal["user", "assistant"] = "user"
    content: str = ""

    @model_validator(mode="before")
    @classmethod
    def _accept_type_key(cls, data: Any) -> Any:
        # Older frontends send {"type": "user" | "bot", "content": ...}
        if isinstance(data, dict):
            data = dict(data)
            role = data.get("role") or data.pop("type", None) or "user"
            data["role"] = "user" if str(role).lower() == "user" else "assistant"
            if data.get("content") is None:
                data["content"] = ""
        return data


# ---------------------------------------------------------------------------
# Classification and orchestration state
# ---------------------------------------------------------------------------
class ClassificationResult(WireModel):
    """Which capability domains a message touches."""

    email: bool = False
    teams: bool = False
    confidence: Literal["high", "medium", "low"] = "low"
    reasoning: str = ""
    source: Literal["llm", "keyword"] = "llm"

    @field_validator("confidence", mode="before")
    @classmethod
    def _numeric_confidence(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if value >= 0.75:
                return "high"
            return "medium" if value >= 0.4 else "low"
        if isinstance(value, str):
            return value.strip().lower()
        return value

    def domains(self) -> List[str]:
        """Names of the flagged domains."""
        return [name for name in DOMAIN_PROVIDERS if getattr(self, name)]

    def providers(self) -> List[str]:
        """Executor names backing the flagged domains."""
        return [DOMAIN_PROVIDERS[name] for name in self.domains()]


class StepRecord(WireModel):
    """One executed step of a tool chain."""

    step: int
    tool_name: str
    provider: str
    args: Dict[str, Any] = Field(default_factory=dict)
    reasoning: str = ""
    result: ToolResult


class PriorStepContext(WireModel):
    """What a continuation planning call knows about the chain so far."""

    steps: List[StepRecord]
    next_step_description: Optional[str] = None

    @property
    def last(self) -> StepRecord:
        return self.steps[-1]


class StepSummary(WireModel):
    """Step information returned to the caller."""

    step: int
    tool_name: str
    provider: str
    reasoning: str = ""
    is_error: bool = False


class ChatMode(str, Enum):
    """How a chat request was answered."""

    STANDARD = "standard"
    TOOL = "tool"
    TOOL_MULTI_STEP = "tool_multi_step"
    AUTH_REQUIRED = "auth_required"
    ERROR = "error"
    PARTIAL = "partial"


class ChatOutcome(WireModel):
    """Structured result of one end-to-end chat request."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, use_enum_values=True
    )

    success: bool
    response: str
    used_tool: bool = False
    mode: ChatMode = ChatMode.STANDARD
    tool_name: Optional[str] = None
    provider: Optional[str] = None
    tool_result: Any = None
    steps: List[StepSummary] = Field(default_factory=list)
    classification: Optional[ClassificationResult] = None
    required_provider: Optional[str] = None
    error_type: Optional[str] = None
    missing_fields: Optional[List[str]] = None
    missing_providers: Optional[List[str]] = None
    partial: bool = False
