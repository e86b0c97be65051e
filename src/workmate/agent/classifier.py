"""
Query classifier.

Decides which capability domains (email, teams) a message touches, so the orchestration loop
only offers the tools that can help.  The primary path asks the LLM for a strict-JSON verdict;
any failure falls back to deterministic keyword matching with ``confidence="low"``.
"""

import logging
import re
from typing import (
    Dict,
    Sequence,
    Tuple,
)

from pydantic import ValidationError

from workmate.agent.llm import (
    BaseLLM,
    parse_json_object,
)
from workmate.config import settings
from workmate.core.errors import LLMError
from workmate.core.schema import (
    ClassificationResult,
    ConversationTurn,
)

logger = logging.getLogger(__name__)

DOMAIN_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "email": (
        "email",
        "e-mail",
        "gmail",
        "mail",
        "inbox",
        "unread",
        "attachment",
        "sender",
        "subject",
        "label",
        "message",
    ),
    "teams": (
        "teams",
        "team",
        "chat",
        "channel",
        "meeting",
        "calendar",
        "event",
        "schedule",
        "appointment",
        "microsoft",
        "colleague",
        "message",
    ),
}

_PATTERNS: Dict[str, Tuple[re.Pattern, ...]] = {
    domain: tuple(re.compile(rf"\b{re.escape(word)}", re.IGNORECASE) for word in words)
    for domain, words in DOMAIN_KEYWORDS.items()
}

SYSTEM_PROMPT = """\
You route requests for an assistant connected to Gmail (domain "email") and Microsoft Teams
(domain "teams": chats, channels, meetings and calendar).
Decide which domains the CURRENT message needs, using the conversation only to resolve
references like "reply to him" or "that meeting".
Rules:
- Greetings, small talk and general knowledge questions need no domain.
- A request may need both domains, e.g. "find Bob's email in Teams and email him".
- "send a message" without more context may mean either domain; flag both.
Reply with one JSON object and nothing else:
{"email": true|false, "teams": true|false, "confidence": "high"|"medium"|"low", "reasoning": "<one sentence>"}
"""


def format_history(history: Sequence[ConversationTurn]) -> str:
    """Render turns as ``User: ...`` / ``Assistant: ...`` lines."""
    return "\n".join(
        f"{'User' if turn.role == 'user' else 'Assistant'}: {turn.content}" for turn in history
    )


class QueryClassifier:
    """LLM classification with a keyword fallback that never raises."""

    def __init__(self, llm: BaseLLM | None, history_window: int | None = None) -> None:
        self.llm = llm
        self.history_window = settings.HISTORY_WINDOW if history_window is None else history_window

    async def classify(
        self, message: str, history: Sequence[ConversationTurn] = ()
    ) -> ClassificationResult:
        """Classify *message* given the trailing ``history_window`` turns of *history*."""
        if self.llm is None:
            return self.keyword_classify(message)

        recent = list(history)[-self.history_window :] if self.history_window else []
        prompt = f"CURRENT MESSAGE:\n{message}"
        if recent:
            prompt = f"PREVIOUS CONVERSATION:\n{format_history(recent)}\n\n{prompt}"

        try:
            reply = await self.llm.complete(prompt, system=SYSTEM_PROMPT, json_mode=True)
            data = parse_json_object(reply)
            data["source"] = "llm"
            result = ClassificationResult.model_validate(data)
        except (LLMError, ValueError, ValidationError) as exc:
            # json.JSONDecodeError is a ValueError
            logger.warning("LLM classification failed, using keywords: %s", exc)
            return self.keyword_classify(message)

        logger.info(
            "Classified as %s (%s): %s",
            result.domains() or "general",
            result.confidence,
            result.reasoning,
        )
        return result

    @staticmethod
    def keyword_classify(message: str) -> ClassificationResult:
        """Deterministic keyword fallback."""
        hits = {
            domain: sorted({p.pattern for p in patterns if p.search(message or "")})
            for domain, patterns in _PATTERNS.items()
        }
        matched = [domain for domain, found in hits.items() if found]
        reasoning = (
            "Keyword match for " + ", ".join(matched) if matched else "No domain keywords found"
        )
        return ClassificationResult(
            email=bool(hits["email"]),
            teams=bool(hits["teams"]),
            confidence="low",
            reasoning=reasoning,
            source="keyword",
        )
