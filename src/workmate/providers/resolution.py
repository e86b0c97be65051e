"""
Entity resolution helpers.

Tools accept human-friendly identifiers (a display name, an email address, a chat topic) which
have to be matched against entities listed from the provider.  Matching is case-insensitive and
ranks exact matches above substring matches.
"""

from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Sequence,
    Tuple,
)

EXACT = 2
PARTIAL = 1
NO_MATCH = 0


def match_score(term: str, candidates: Iterable[str | None]) -> int:
    """Best score of *term* against any of *candidates*."""
    needle = term.strip().lower()
    if not needle:
        return NO_MATCH
    best = NO_MATCH
    for candidate in candidates:
        if not candidate:
            continue
        value = candidate.strip().lower()
        if value == needle:
            return EXACT
        if needle in value:
            best = PARTIAL
    return best


def rank(
    term: str,
    items: Sequence[Dict[str, Any]],
    keys: Callable[[Dict[str, Any]], Iterable[str | None]],
    tiebreak: Callable[[Dict[str, Any]], int] = lambda item: 0,
) -> List[Dict[str, Any]]:
    """
    Items matching *term*, best first.

    Ordering is by match score, then by *tiebreak* (higher first), then by the provider's own
    order.
    """
    scored: List[Tuple[int, int, int, Dict[str, Any]]] = []
    for index, item in enumerate(items):
        score = match_score(term, keys(item))
        if score:
            scored.append((-score, -tiebreak(item), index, item))
    scored.sort(key=lambda entry: entry[:3])
    return [entry[3] for entry in scored]


def best_match(
    term: str,
    items: Sequence[Dict[str, Any]],
    keys: Callable[[Dict[str, Any]], Iterable[str | None]],
    tiebreak: Callable[[Dict[str, Any]], int] = lambda item: 0,
) -> Dict[str, Any] | None:
    """The single best item for *term*, or ``None``."""
    ranked = rank(term, items, keys, tiebreak)
    return ranked[0] if ranked else None


def looks_like_email(value: str | None) -> bool:
    """Loose ``local@domain.tld`` check."""
    if not value or " " in value.strip():
        return False
    local, sep, domain = value.strip().partition("@")
    if not (sep and local and "." in domain):
        return False
    return not domain.startswith(".") and not domain.endswith(".")
