"""
Tool-call planner.

Turns the user's message, the recent conversation, the offered tool declarations and (on
continuation steps) the previous step's result into one :class:`ToolCallDecision`.  The planner
never raises: an unusable reply degrades to a direct answer.
"""

import json
import logging
from typing import (
    ClassVar,
    List,
    Sequence,
)

from pydantic import ValidationError

from workmate.agent.classifier import format_history
from workmate.agent.llm import (
    BaseLLM,
    parse_json_object,
)
from workmate.config import settings
from workmate.core.errors import LLMError
from workmate.core.schema import (
    ConversationTurn,
    PriorStepContext,
    ToolCallDecision,
    ToolDeclaration,
)

logger = logging.getLogger(__name__)

PRIOR_RESULT_CHAR_LIMIT = 6000
PLANNER_APOLOGY = "Sorry, I couldn't work out how to handle that request. Could you rephrase it?"


class ToolCallPlanner:
    """Prompt protocol between the orchestration loop and the LLM."""

    SYSTEM_PROMPT: ClassVar[
        str
    ] = """\
You are Workmate, an assistant that acts on the user's Gmail and Microsoft Teams accounts by
calling tools. Decide the single next action.

Reply with exactly one JSON object, no extra text:
{"needsTool": true|false,
 "toolName": "<declared tool name or null>",
 "toolArgs": {<arguments matching the tool's parameters>},
 "reasoning": "<short explanation>",
 "requiresNextStep": true|false,
 "nextStepDescription": "<what the next step must do, or null>",
 "response": "<direct answer when needsTool is false, else null>"}

Rules:
1. toolName MUST be one of the AVAILABLE TOOLS. Never invent tool names.
2. For send, post and create actions fill every content field (message, body, subject) with
   real text written from the user's request. Never leave them empty or null.
3. Never fabricate identifiers (email addresses, chat IDs, message IDs, event IDs). Use only
   values that appear in the user's message or in a previous step result. When an identifier
   is missing, call a lookup tool first and set requiresNextStep to true.
4. Set requiresNextStep to true only when another tool call is needed after this one, and
   describe that call in nextStepDescription.
5. When a previous step already answers the request, set needsTool to false.
6. When no tool is needed, answer the user directly in "response".
"""

    def __init__(self, llm: BaseLLM | None, history_window: int | None = None) -> None:
        self.llm = llm
        self.history_window = settings.HISTORY_WINDOW if history_window is None else history_window

    # ------------------------------------------------------------------
    # Prompt construction
    # ------------------------------------------------------------------
    @staticmethod
    def describe_tools(declarations: Sequence[ToolDeclaration]) -> str:
        lines: List[str] = []
        for decl in declarations:
            flag = " [mutating]" if decl.mutating else ""
            lines.append(f"- {decl.name} (provider: {decl.provider}){flag}: {decl.description}")
            lines.append(f"  parameters: {json.dumps(decl.to_json_schema(), ensure_ascii=False)}")
        return "\n".join(lines)

    def build_prompt(
        self,
        message: str,
        history: Sequence[ConversationTurn],
        declarations: Sequence[ToolDeclaration],
        prior: PriorStepContext | None = None,
    ) -> str:
        """Assemble the user-side prompt in clearly labelled sections."""
        parts = ["AVAILABLE TOOLS:\n" + self.describe_tools(declarations)]

        recent = list(history)[-self.history_window :] if self.history_window else []
        if recent:
            parts.append("PREVIOUS CONVERSATION:\n" + format_history(recent))

        if prior is not None:
            done = "\n".join(
                f"{s.step}. {s.tool_name} {json.dumps(s.args, ensure_ascii=False)}"
                for s in prior.steps
            )
            result = prior.last.result.text()
            if len(result) > PRIOR_RESULT_CHAR_LIMIT:
                result = result[:PRIOR_RESULT_CHAR_LIMIT] + "\n... (truncated)"
            parts.append("STEPS ALREADY EXECUTED:\n" + done)
            parts.append(f"RESULT OF STEP {prior.last.step} ({prior.last.tool_name}):\n{result}")
            if prior.next_step_description:
                parts.append("GOAL OF THIS STEP:\n" + prior.next_step_description)

        parts.append("CURRENT QUERY:\n" + message)
        return "\n\n".join(parts)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------
    @staticmethod
    def parse_decision(content: str) -> ToolCallDecision:
        """Parse a raw reply; unparseable text becomes a direct answer."""
        try:
            return ToolCallDecision.model_validate(parse_json_object(content))
        except (ValueError, ValidationError) as exc:
            logger.warning("Planner reply is not a valid decision: %s", exc)
            text = (content or "").strip()
            return ToolCallDecision(needs_tool=False, response=text or PLANNER_APOLOGY)

    async def plan(
        self,
        message: str,
        history: Sequence[ConversationTurn],
        declarations: Sequence[ToolDeclaration],
        prior: PriorStepContext | None = None,
    ) -> ToolCallDecision:
        """Return the next :class:`ToolCallDecision`."""
        if self.llm is None:
            logger.error("No LLM backend configured; planner cannot choose a tool")
            return ToolCallDecision(needs_tool=False, response=PLANNER_APOLOGY)
        prompt = self.build_prompt(message, history, declarations, prior)
        logger.debug("Planner prompt:\n%s", prompt)
        try:
            reply = await self.llm.complete(prompt, system=self.SYSTEM_PROMPT, json_mode=True)
        except LLMError as exc:
            logger.error("Planner LLM call failed: %s", exc)
            return ToolCallDecision(needs_tool=False, response=PLANNER_APOLOGY)

        decision = self.parse_decision(reply)
        logger.info(
            "Planner decision: needs_tool=%s tool=%s next=%s (%s)",
            decision.needs_tool,
            decision.tool_name,
            decision.requires_next_step,
            decision.reasoning,
        )
        return decision
