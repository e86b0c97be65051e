"""Terminal helpers shared by the API launcher and the CLI client."""

from enum import Enum
from typing import Any


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    GREY = "\033[90m"


RESET = "\033[0m"

# Chat mode -> color used when the CLI prints a reply
MODE_COLORS = {
    "standard": AnsiColors.YELLOW,
    "tool": AnsiColors.GREEN,
    "tool_multi_step": AnsiColors.GREEN,
    "partial": AnsiColors.YELLOW,
    "auth_required": AnsiColors.BLUE,
    "error": AnsiColors.RED,
}


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(f"{color.value}{text}{RESET}", *args, **kwargs)


def color_for_mode(mode: str | None) -> AnsiColors:
    """Color for a reply answered in *mode*; unknown modes print yellow."""
    return MODE_COLORS.get(mode or "", AnsiColors.YELLOW)
