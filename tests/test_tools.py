"""
Tool registry and argument validation.

Run with:
$ pytest -q
"""

from typing import (
    Any,
    Dict,
)

import pytest

from workmate.core.errors import ToolValidationError
from workmate.core.schema import (
    ToolDeclaration,
    ToolParameter,
)
from workmate.providers.base import (
    BaseProviderExecutor,
    handles,
)
from workmate.providers.gmail import GmailExecutor
from workmate.providers.teams import TeamsExecutor
from workmate.tools import (
    TOOL_REGISTRY,
    get_declaration,
    missing_required_fields,
    register_tools,
    validate_arguments,
)

SAMPLE = ToolDeclaration(
    name="sample_tool",
    provider="sample",
    description="A tool used only by these tests",
    parameters=[
        ToolParameter(name="count", type="integer", default=10),
        ToolParameter(name="flag", type="boolean"),
        ToolParameter(name="people", type="array"),
        ToolParameter(name="text", required=True),
        ToolParameter(name="mode", enum=["fast", "slow"]),
    ],
)


def test_every_declaration_names_its_provider() -> None:
    """Each tool is owned by the provider it was registered under."""

    assert len(TOOL_REGISTRY["gmail"]) == 6
    assert len(TOOL_REGISTRY["teams"]) == 17
    for provider, tools in TOOL_REGISTRY.items():
        for name, decl in tools.items():
            assert decl.provider == provider
            assert decl.name == name


def test_executors_handle_exactly_their_declared_tools() -> None:
    assert set(GmailExecutor.tool_names()) == set(TOOL_REGISTRY["gmail"])
    assert set(TeamsExecutor.tool_names()) == set(TOOL_REGISTRY["teams"])


def test_mutating_tools_are_flagged() -> None:
    assert get_declaration("gmail", "gmail_send_message").mutating
    assert get_declaration("teams", "teams_delete_calendar_event").mutating
    assert not get_declaration("teams", "teams_list_chats").mutating


def test_register_duplicate_tool_rejected() -> None:
    try:
        register_tools("sample", [SAMPLE])
        with pytest.raises(ValueError):
            register_tools("sample", [SAMPLE])
    finally:
        TOOL_REGISTRY.pop("sample", None)


def test_register_foreign_declaration_rejected() -> None:
    try:
        register_tools("other", [SAMPLE])
    except ValueError as exc:
        assert "sample" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("ValueError was not raised")
    finally:
        TOOL_REGISTRY.pop("other", None)


def test_executor_with_missing_handler_is_refused() -> None:
    """A provider executor must handle every declared tool and nothing else."""

    with pytest.raises(TypeError, match="no handler"):

        class HalfGmail(BaseProviderExecutor):  # pylint: disable=unused-variable
            PROVIDER = "gmail"

            @handles("gmail_get_profile")
            async def profile(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
                return {}

    with pytest.raises(TypeError, match="undeclared"):

        class ExtraGmail(GmailExecutor):  # pylint: disable=unused-variable
            @handles("gmail_delete_everything")
            async def delete_everything(self, args: Dict[str, Any], token: str) -> Dict:
                return {}


def test_validate_fills_defaults_and_coerces() -> None:
    cleaned = validate_arguments(
        SAMPLE,
        {"flag": "yes", "people": "a@x.io, b@x.io", "text": "hi", "mode": "fast", "junk": 1},
    )

    assert cleaned == {
        "count": 10,
        "flag": True,
        "people": ["a@x.io", "b@x.io"],
        "text": "hi",
        "mode": "fast",
    }


def test_validate_numeric_strings() -> None:
    assert validate_arguments(SAMPLE, {"count": "5", "text": "x"})["count"] == 5


def test_validate_reports_missing_and_bad_fields() -> None:
    try:
        validate_arguments(SAMPLE, {"text": "   ", "flag": "maybe", "mode": "medium"})
    except ToolValidationError as exc:
        assert exc.fields == ["text", "flag", "mode"]
        assert "missing required field(s): text" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("ToolValidationError was not raised")


def test_missing_required_fields_treats_blank_as_missing() -> None:
    decl = get_declaration("gmail", "gmail_send_message")

    assert missing_required_fields(decl, {"to": "a@b.io", "subject": "Hi", "body": ""}) == [
        "body"
    ]
    assert missing_required_fields(decl, None) == ["to", "subject", "body"]


def test_json_schema_rendering() -> None:
    schema = get_declaration("teams", "teams_create_calendar_event").to_json_schema()

    assert schema["required"] == ["subject", "startDateTime", "endDateTime"]
    assert schema["properties"]["attendees"]["items"] == {"type": "string"}
    assert schema["properties"]["isOnlineMeeting"]["default"] is False
