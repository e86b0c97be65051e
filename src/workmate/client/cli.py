"""CLI client for the Workmate API."""

from __future__ import annotations

import logging
import time
from typing import (
    Any,
    Dict,
    List,
    cast,
)

import httpx

from workmate.common import (
    AnsiColors,
    color_for_mode,
    colored_print,
)
from workmate.config import settings

logger = logging.getLogger(__name__)

CLI_HISTORY_LIMIT = 20


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message(prompt: str = "\nYou: ") -> str | None:
    """
    Show *prompt* and read one line from standard input.

    Returns ``None`` once input is closed or interrupted (Ctrl+D, Ctrl+C).
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ctrl+C must interrupt a blocking read()
    signal.siginterrupt(signal.SIGINT, True)

    colored_print(prompt, AnsiColors.BLUE, end="", flush=True)
    try:
        return input().strip()
    except (EOFError, KeyboardInterrupt):
        print()
        return None


def auth_headers() -> Dict[str, str]:
    """Provider token headers taken from the CLI token settings."""
    headers: Dict[str, str] = {}
    if settings.CLI_GOOGLE_ACCESS_TOKEN:
        headers["X-Google-Access-Token"] = settings.CLI_GOOGLE_ACCESS_TOKEN
    if settings.CLI_MICROSOFT_ACCESS_TOKEN:
        headers["X-Microsoft-Access-Token"] = settings.CLI_MICROSOFT_ACCESS_TOKEN
    return headers


def call_api(
    endpoint: str, data: Dict[str, Any] | None = None, max_retries: int = 5
) -> Dict[str, Any]:
    """POST *data* to *endpoint* (GET when *data* is None), retrying while the API starts."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"
    response: httpx.Response | None = None

    for attempt in range(max_retries):
        try:
            with httpx.Client(timeout=120.0, headers=auth_headers()) as client:
                if data is None:
                    response = client.get(api_url)
                else:
                    response = client.post(api_url, json=data)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
        except httpx.HTTPError as e:
            # On connection refused, retry with exponential backoff
            if isinstance(e, httpx.ConnectError) and attempt < max_retries - 1:
                retry_delay = 0.5 * (2**attempt)
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
                continue

            logger.error("API request error: %s", e)
            error_msg = f"Error connecting to API: {e}"
            if isinstance(e, httpx.HTTPStatusError) and response is not None:
                try:
                    detail = response.json().get("detail")
                except ValueError:
                    detail = None
                if detail:
                    error_msg = f"API error: {detail}"
            return {"success": False, "response": error_msg, "mode": "error"}

    return {
        "success": False,
        "response": f"Failed to connect to API after {max_retries} attempts",
        "mode": "error",
    }


def print_status() -> None:
    """Show which accounts the configured tokens unlock."""
    status = call_api("/chat/status")
    domains = status.get("domains")
    if not domains:
        colored_print(status.get("response", "Could not read status"), AnsiColors.RED)
        return
    for domain, info in domains.items():
        state = "connected" if info.get("connected") else "not connected"
        color = AnsiColors.GREEN if info.get("connected") else AnsiColors.GREY
        colored_print(f"  {domain}: {info.get('provider')} ({state})", color)


def run_cli() -> None:
    """Run the CLI client that communicates with the API."""
    history: List[Dict[str, str]] = []

    colored_print(
        "\nWorkmate shell - type 'exit' or 'quit' (or Ctrl+C) to exit, 'status' for accounts",
        AnsiColors.GREEN,
    )
    print_status()
    while True:
        user_msg = get_user_message()
        if user_msg is None or user_msg.lower() in {"exit", "quit"}:
            break
        if user_msg.lower() == "status":
            print_status()
            continue
        if not user_msg:
            continue

        outcome = call_api("/chat", {"message": user_msg, "conversationHistory": history})
        reply = outcome.get("response") or "No response from API"

        for step in outcome.get("steps") or []:
            colored_print(f"  [{step.get('step')}] {step.get('toolName')}", AnsiColors.GREY)
        colored_print(reply, color_for_mode(outcome.get("mode")))

        if outcome.get("success"):
            history.append({"role": "user", "content": user_msg})
            history.append({"role": "assistant", "content": reply})
            del history[:-CLI_HISTORY_LIMIT]


if __name__ == "__main__":
    run_cli()
