"""Renders tool results as prose, with a deterministic fallback."""

import json
import logging
from typing import (
    List,
    Sequence,
)

from workmate.agent.llm import BaseLLM
from workmate.core.errors import LLMError
from workmate.core.schema import (
    StepRecord,
    ToolResult,
)
from workmate.tools import get_declaration

logger = logging.getLogger(__name__)

RESULT_CHAR_LIMIT = 8000

STYLE_DIRECTIVES = """\
Write the answer for a chat window using Markdown:
- Start with a short header or one-sentence summary.
- Use bullet lists when the result contains several items (emails, chats, events); show the
  most useful fields only (sender, subject, date; participants; time and title).
- For actions that changed something (sent, posted, created, updated, deleted) reply with a
  concise confirmation naming what was done.
- If the result is empty say so plainly, e.g. "No messages found".
- Report only facts present in the results. Never invent or alter names, dates or addresses.
- Do not mention JSON, tools or internal IDs unless the user asked for them.
"""


def _result_json(result: ToolResult) -> str:
    data = result.data()
    text = json.dumps(data, indent=2, ensure_ascii=False) if not isinstance(data, str) else data
    if len(text) > RESULT_CHAR_LIMIT:
        text = text[:RESULT_CHAR_LIMIT] + "\n... (truncated)"
    return text


def _is_mutating(step: StepRecord) -> bool:
    decl = get_declaration(step.provider, step.tool_name)
    return bool(decl and decl.mutating)


class ResponseFormatter:
    """Presentation only: never changes what the results say, never fails the request."""

    def __init__(self, llm: BaseLLM | None) -> None:
        self.llm = llm

    def build_prompt(
        self,
        message: str,
        steps: Sequence[StepRecord],
        final_result: ToolResult,
        partial: bool = False,
    ) -> str:
        parts: List[str] = [f"USER REQUEST:\n{message}"]
        if len(steps) > 1:
            chain = "\n".join(
                f"{s.step}. {s.tool_name}: {s.reasoning or 'no reasoning given'}" for s in steps
            )
            parts.append("ACTIONS TAKEN:\n" + chain)
            for s in steps[:-1]:
                parts.append(f"RESULT OF STEP {s.step} ({s.tool_name}):\n{_result_json(s.result)}")
            parts.append(
                "Begin with a brief summary of the chain of actions, then present the final result."
            )
        last = steps[-1] if steps else None
        label = f" ({last.tool_name})" if last else ""
        parts.append(f"FINAL RESULT{label}:\n{_result_json(final_result)}")
        if last is not None and _is_mutating(last):
            parts.append("The final action changed data: confirm it concisely.")
        if partial:
            parts.append(
                "The step limit was reached before the request was fully handled. "
                "Say clearly that the answer is incomplete and what is still missing."
            )
        return "\n\n".join(parts)

    async def format(
        self,
        message: str,
        steps: Sequence[StepRecord],
        final_result: ToolResult,
        partial: bool = False,
    ) -> str:
        """Natural-language answer for *message* from the step history."""
        if self.llm is not None:
            prompt = self.build_prompt(message, steps, final_result, partial)
            try:
                text = await self.llm.complete(prompt, system=STYLE_DIRECTIVES)
                if text and text.strip():
                    return text.strip()
                logger.warning("Formatter returned an empty reply; using fallback")
            except LLMError as exc:
                logger.warning("Formatter LLM call failed; using fallback: %s", exc)
        return self.fallback(steps, final_result, partial)

    @staticmethod
    def fallback(
        steps: Sequence[StepRecord], final_result: ToolResult, partial: bool = False
    ) -> str:
        """Deterministic rendering: one pretty-printed JSON block per step."""
        blocks: List[str] = []
        if len(steps) > 1:
            blocks.append(f"I completed {len(steps)} steps:")
            for s in steps:
                blocks.append(
                    f"**Step {s.step}: {s.tool_name}**\n```json\n{_result_json(s.result)}\n```"
                )
        else:
            name = steps[0].tool_name if steps else "the tool"
            blocks.append(f"Here is the result of {name}:")
            blocks.append(f"```json\n{_result_json(final_result)}\n```")
        if partial:
            blocks.append(
                "Note: I reached the maximum number of steps, so this answer may be incomplete."
            )
        return "\n\n".join(blocks)
