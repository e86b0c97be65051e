"""
Main orchestration loop for Workmate.

One call to :meth:`Orchestrator.run` handles one chat request::

    CLASSIFYING -> PLANNING -> VALIDATING -> EXECUTING -> (PLANNING | FORMATTING) -> DONE

Any state may end in ERROR.  Steps run strictly one after another because each planning call
depends on the previous result, and the step bound is enforced here whatever the planner says.
"""

from __future__ import annotations

import logging
import re
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Sequence,
)

from workmate.agent.classifier import (
    QueryClassifier,
    format_history,
)
from workmate.agent.formatter import ResponseFormatter
from workmate.agent.gateway import ToolGateway
from workmate.agent.llm import BaseLLM
from workmate.agent.planner import ToolCallPlanner
from workmate.config import settings
from workmate.core.errors import (
    ErrorCategory,
    LLMError,
    MissingCredentialError,
    ProviderError,
    ToolExecutionError,
    ToolValidationError,
)
from workmate.core.schema import (
    DOMAIN_PROVIDERS,
    PROVIDER_DISPLAY_NAMES,
    ChatMode,
    ChatOutcome,
    ClassificationResult,
    ConversationTurn,
    CredentialSet,
    PriorStepContext,
    StepRecord,
    StepSummary,
    ToolCallDecision,
    ToolDeclaration,
)
from workmate.tools import missing_required_fields

logger = logging.getLogger(__name__)

CancelCheck = Callable[[], Awaitable[bool]]

PROVIDER_ERROR_MESSAGES: Dict[ErrorCategory, str] = {
    ErrorCategory.AUTH_EXPIRED: "Your {name} session has expired. Please sign in again.",
    ErrorCategory.RATE_LIMITED: "{name} is receiving too many requests right now. "
    "Please try again in a moment.",
    ErrorCategory.PERMISSION_DENIED: "You don't have permission to do that with your {name} "
    "account.",
    ErrorCategory.NOT_FOUND: "I couldn't find what you asked for. {detail}",
    ErrorCategory.INVALID_REQUEST: "{name} couldn't process that request. {detail}",
    ErrorCategory.TRANSIENT: "{name} is temporarily unavailable. Please try again later.",
    ErrorCategory.UNKNOWN: "Something went wrong while talking to {name}. {detail}",
}

GENERIC_ERROR = "Sorry, something went wrong while handling your request. Please try again."
LLM_UNAVAILABLE = "Sorry, I can't reach the language model right now. Please try again shortly."

SUCCESS_MODES = {ChatMode.STANDARD, ChatMode.TOOL, ChatMode.TOOL_MULTI_STEP, ChatMode.PARTIAL}

# Values a model writes when it doesn't actually know an identifier.
_BRACKETED_RE = re.compile(r"^\s*[<\[{].*[>\]}]\s*$")  # <email>, [chat id], {userId}
_PLACEHOLDER_RE = re.compile(
    r"""^\s*(
        (your|their|his|her|the)[\s_-].*   # "his email", "the_chat_id"
        | unknown | placeholder | tbd | n/?a | none | null | undefined | \.\.\.
        | .*@example\.(com|org|net)
        | (user|someone|recipient|name)@.*
    )\s*$""",
    re.IGNORECASE | re.VERBOSE,
)
_IDENTIFIER_FIELDS = {"to", "cc", "bcc", "attendees"}


def is_identifier_field(name: str) -> bool:
    return name in _IDENTIFIER_FIELDS or name.endswith("Id") or "mail" in name.lower()


def is_placeholder(value: Any, known_text: str = "") -> bool:
    """
    True when *value* looks invented rather than discovered.

    Bracketed templates are always rejected.  Anything else that merely looks like a stand-in
    (``user@company.com``, ``the-team@...``) is accepted once it occurs in *known_text*, i.e. the
    user typed it or an earlier step returned it.
    """
    if not isinstance(value, str):
        return False
    if _BRACKETED_RE.match(value):
        return True
    if not _PLACEHOLDER_RE.match(value):
        return False
    return value.strip().lower() not in known_text.lower()


def placeholder_fields(args: Dict[str, Any], known_text: str = "") -> List[str]:
    """Identifier arguments whose values look invented rather than discovered."""
    found: List[str] = []
    for name, value in args.items():
        if not is_identifier_field(name):
            continue
        values = value if isinstance(value, (list, tuple)) else [value]
        if any(is_placeholder(v, known_text) for v in values):
            found.append(name)
    return found


def _display(provider: str | None) -> str:
    return PROVIDER_DISPLAY_NAMES.get(provider or "", provider or "the provider")


# ---------------------------------------------------------------------------
# Per-request state
# ---------------------------------------------------------------------------
@dataclass
class SessionState:
    """Everything one request accumulates; discarded when the response is built."""

    message: str
    history: List[ConversationTurn]
    credentials: CredentialSet
    classification: ClassificationResult | None = None
    steps: List[StepRecord] = field(default_factory=list)
    prior: PriorStepContext | None = None

    def known_text(self) -> str:
        """The user's words plus every earlier step result."""
        parts = [self.message]
        parts += [turn.content for turn in self.history]
        parts += [step.result.text() for step in self.steps]
        return "\n".join(parts)

    def outcome(self, mode: ChatMode, response: str, **extra: Any) -> ChatOutcome:
        """Build the caller-facing result from the current state."""
        return ChatOutcome(
            success=mode in SUCCESS_MODES,
            response=response,
            used_tool=bool(self.steps),
            mode=mode,
            steps=[
                StepSummary(
                    step=s.step,
                    tool_name=s.tool_name,
                    provider=s.provider,
                    reasoning=s.reasoning,
                    is_error=s.result.is_error,
                )
                for s in self.steps
            ],
            classification=self.classification,
            **extra,
        )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------
class Orchestrator:
    """Drives classifier -> planner -> gateway -> formatter for one request at a time."""

    def __init__(
        self,
        gateway: ToolGateway,
        classifier: QueryClassifier,
        planner: ToolCallPlanner,
        formatter: ResponseFormatter,
        llm: BaseLLM | None,
        max_steps: int | None = None,
        history_window: int | None = None,
    ) -> None:
        self.gateway = gateway
        self.classifier = classifier
        self.planner = planner
        self.formatter = formatter
        self.llm = llm
        self.max_steps = max(1, max_steps or settings.MAX_TOOL_STEPS)
        self.history_window = settings.HISTORY_WINDOW if history_window is None else history_window

    async def run(
        self,
        message: str,
        history: Sequence[ConversationTurn] | None = None,
        credentials: CredentialSet | None = None,
        is_cancelled: Optional[CancelCheck] = None,
    ) -> ChatOutcome:
        """Handle one chat request.  Always returns an outcome, never raises."""
        turns = list(history or [])
        state = SessionState(
            message=message,
            history=turns[-self.history_window :] if self.history_window else [],
            credentials=credentials or CredentialSet(),
        )
        try:
            return await self._run(state, is_cancelled)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Unhandled error while processing chat request")
            return state.outcome(ChatMode.ERROR, GENERIC_ERROR, error_type="internal_error")

    def status(self, credentials: CredentialSet) -> Dict[str, Any]:
        """Which domains are usable with *credentials* and the tools they expose."""
        domains: Dict[str, Any] = {}
        available: List[str] = []
        for domain, provider in DOMAIN_PROVIDERS.items():
            connected = bool(credentials.for_provider(provider))
            tools = [decl.name for decl in self.gateway.list_tools([provider])]
            domains[domain] = {"provider": provider, "connected": connected, "tools": tools}
            if connected:
                available.extend(tools)
        return {"domains": domains, "availableTools": available}

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    async def _run(self, state: SessionState, is_cancelled: Optional[CancelCheck]) -> ChatOutcome:
        # CLASSIFYING
        state.classification = await self.classifier.classify(state.message, state.history)
        relevant = [p for p in state.classification.providers() if p in self.gateway.providers]
        connected = [p for p in relevant if state.credentials.for_provider(p)]
        unconnected = [p for p in relevant if p not in connected]
        if not connected:
            return await self._standard_chat(state, unconnected)

        offered = self.gateway.list_tools(relevant)
        hit_bound = False

        while True:
            if state.steps and is_cancelled is not None and await is_cancelled():
                logger.info("Request cancelled after %d step(s)", len(state.steps))
                return state.outcome(
                    ChatMode.ERROR, "The request was cancelled.", error_type="cancelled"
                )

            # PLANNING
            decision = await self.planner.plan(state.message, state.history, offered, state.prior)
            if not decision.needs_tool:
                if state.steps:
                    break
                if not decision.response:
                    return await self._standard_chat(state, unconnected)
                return state.outcome(
                    ChatMode.STANDARD,
                    decision.response,
                    missing_providers=unconnected or None,
                )

            # VALIDATING
            decl = self.gateway.find_tool(decision.tool_name, offered)
            if decl is None:
                logger.warning("Planner chose a tool that was not offered: %s", decision.tool_name)
                return state.outcome(
                    ChatMode.ERROR,
                    "Sorry, I tried to use an action that isn't available here "
                    f"({decision.tool_name or 'none'}). Please rephrase your request.",
                    tool_name=decision.tool_name,
                    error_type="unknown_tool",
                )
            rejection = self._validate(state, decision, decl)
            if rejection is not None:
                return rejection

            # EXECUTING
            provider = decl.provider
            try:
                result = await self.gateway.call_tool(
                    provider,
                    decl.name,
                    decision.tool_args,
                    state.credentials.for_provider(provider),
                )
            except ToolValidationError as exc:
                logger.info("Executor rejected arguments for %s: %s", decl.name, exc)
                return self._needs_information(state, decl, exc.fields)
            except ProviderError as exc:
                return self._provider_failure(state, decl, exc)
            except MissingCredentialError as exc:
                return self._auth_required(state, decl, exc.provider)
            except ToolExecutionError as exc:
                logger.error("Dispatch of %s failed: %s", decl.name, exc)
                return state.outcome(
                    ChatMode.ERROR,
                    GENERIC_ERROR,
                    tool_name=decl.name,
                    provider=provider,
                    error_type="execution_error",
                )

            state.steps.append(
                StepRecord(
                    step=len(state.steps) + 1,
                    tool_name=decl.name,
                    provider=provider,
                    args=decision.tool_args,
                    reasoning=decision.reasoning,
                    result=result,
                )
            )
            logger.info("Step %d: %s.%s done", len(state.steps), provider, decl.name)

            if not decision.requires_next_step:
                break
            if len(state.steps) >= self.max_steps:
                logger.warning(
                    "Step bound %d reached; answering with partial results", self.max_steps
                )
                hit_bound = True
                break
            state.prior = PriorStepContext(
                steps=list(state.steps), next_step_description=decision.next_step_description
            )

        # FORMATTING
        final = state.steps[-1]
        response = await self.formatter.format(
            state.message, state.steps, final.result, partial=hit_bound
        )
        if hit_bound:
            mode = ChatMode.PARTIAL
        elif len(state.steps) == 1:
            mode = ChatMode.TOOL
        else:
            mode = ChatMode.TOOL_MULTI_STEP
        return state.outcome(
            mode,
            response,
            tool_name=final.tool_name,
            provider=final.provider,
            tool_result=final.result.data(),
            partial=hit_bound,
        )

    def _validate(
        self, state: SessionState, decision: ToolCallDecision, decl: ToolDeclaration
    ) -> ChatOutcome | None:
        """Credential and argument checks that must pass before anything is dispatched."""
        if not state.credentials.for_provider(decl.provider):
            return self._auth_required(state, decl, decl.provider)

        missing = missing_required_fields(decl, decision.tool_args)
        for name in placeholder_fields(decision.tool_args, state.known_text()):
            param = decl.parameter(name)
            if param is not None and not param.required:
                # an optional recipient or id the model had to guess is simply left out
                logger.info("Dropping guessed optional argument %s for %s", name, decl.name)
                decision.tool_args.pop(name)
            elif name not in missing:
                missing.append(name)
        if missing:
            return self._needs_information(state, decl, missing)
        return None

    # ------------------------------------------------------------------
    # Failure outcomes
    # ------------------------------------------------------------------
    @staticmethod
    def _auth_required(state: SessionState, decl: ToolDeclaration, provider: str) -> ChatOutcome:
        return state.outcome(
            ChatMode.AUTH_REQUIRED,
            f"Please sign in with {_display(provider)} so I can use {decl.name} for you.",
            tool_name=decl.name,
            provider=provider,
            required_provider=provider,
            error_type="auth_required",
        )

    @staticmethod
    def _needs_information(
        state: SessionState, decl: ToolDeclaration, fields: Sequence[str]
    ) -> ChatOutcome:
        wanted = []
        for name in fields:
            param = decl.parameter(name)
            wanted.append(f"{name} ({param.description})" if param and param.description else name)
        return state.outcome(
            ChatMode.ERROR,
            "I need a bit more information before I can do that. Could you tell me: "
            + "; ".join(wanted)
            + "?",
            tool_name=decl.name,
            provider=decl.provider,
            error_type=ErrorCategory.VALIDATION.value,
            missing_fields=list(fields),
        )

    @staticmethod
    def _provider_failure(
        state: SessionState, decl: ToolDeclaration, exc: ProviderError
    ) -> ChatOutcome:
        template = PROVIDER_ERROR_MESSAGES.get(
            exc.category, PROVIDER_ERROR_MESSAGES[ErrorCategory.UNKNOWN]
        )
        logger.warning("%s failed (%s): %s", decl.name, exc.category.value, exc.message)
        extra: Dict[str, Any] = {}
        if exc.category == ErrorCategory.AUTH_EXPIRED:
            extra["required_provider"] = decl.provider
        return state.outcome(
            ChatMode.ERROR,
            template.format(name=_display(decl.provider), detail=exc.message).strip(),
            tool_name=decl.name,
            provider=decl.provider,
            error_type=exc.category.value,
            **extra,
        )

    # ------------------------------------------------------------------
    # Standard chat
    # ------------------------------------------------------------------
    async def _standard_chat(self, state: SessionState, unconnected: Sequence[str]) -> ChatOutcome:
        """Direct LLM answer with no tools offered."""
        names = [_display(p) for p in unconnected]
        missing = list(unconnected) or None
        system = "You are Workmate, a helpful and concise assistant."
        if names:
            system += (
                " The user's request needs an account they have not connected yet ("
                + ", ".join(names)
                + "). Answer what you can and suggest signing in with "
                + " and ".join(names)
                + " so you can act on their behalf."
            )
        prompt = state.message
        if state.history:
            prompt = (
                f"Previous conversation:\n{format_history(state.history)}\n\nUser: {state.message}"
            )

        if self.llm is None:
            return state.outcome(
                ChatMode.ERROR,
                LLM_UNAVAILABLE,
                error_type="llm_unavailable",
                missing_providers=missing,
            )
        try:
            text = await self.llm.complete(prompt, system=system)
        except LLMError as exc:
            logger.error("Standard chat failed: %s", exc)
            return state.outcome(
                ChatMode.ERROR,
                LLM_UNAVAILABLE,
                error_type="llm_unavailable",
                missing_providers=missing,
            )
        return state.outcome(ChatMode.STANDARD, text, missing_providers=missing)
