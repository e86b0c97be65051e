"""
End-to-end orchestration: scripted LLM, real executors, fake provider APIs.

Every LLM call pops the next scripted reply, in the order classify -> plan (per step) -> format.
"""

import pytest
from fakes import (
    GOOGLE_TOKEN,
    MICROSOFT_TOKEN,
    FakeProviderAPI,
    classification,
    direct_answer,
    gmail_metadata,
    graph_chats,
    request_json,
    tool_call,
)

from workmate.agent.agent_loop import placeholder_fields
from workmate.core.schema import (
    ConversationTurn,
    CredentialSet,
)
from workmate.providers.gmail import GmailExecutor
from workmate.providers.normalize import decode_base64url
from workmate.providers.teams import TeamsExecutor

BOTH = CredentialSet(google_access_token=GOOGLE_TOKEN, microsoft_access_token=MICROSOFT_TOKEN)
TEAMS_ONLY = CredentialSet(microsoft_access_token=MICROSOFT_TOKEN)


# ---------------------------------------------------------------------------
# Single-step and standard chat
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_single_tool_call(make_orchestrator, gmail_api: FakeProviderAPI) -> None:
    gmail_api.routes = {
        ("GET", "/messages"): {"messages": [{"id": "m1"}]},
        ("GET", "/messages/m1"): gmail_metadata("m1", "Alice <alice@contoso.com>", "Lunch"),
    }
    orchestrator, llm = make_orchestrator(
        [
            classification(email=True),
            tool_call("gmail_list_messages", {"maxResults": 5}),
            "You have one message from Alice about lunch.",
        ]
    )

    outcome = await orchestrator.run("show my last 5 emails", [], BOTH)

    assert outcome.success
    assert outcome.used_tool
    assert outcome.mode == "tool"
    assert outcome.tool_name == "gmail_list_messages"
    assert outcome.provider == "gmail"
    assert outcome.response == "You have one message from Alice about lunch."
    assert outcome.tool_result["messages"][0]["subject"] == "Lunch"
    assert gmail_api.calls("GET", "/messages")[0].url.params["maxResults"] == "5"
    assert [c["json_mode"] for c in llm.calls] == [True, True, False]


@pytest.mark.asyncio
async def test_small_talk_needs_no_tools(
    make_orchestrator, gmail_api: FakeProviderAPI, teams_api: FakeProviderAPI
) -> None:
    orchestrator, llm = make_orchestrator([classification(), "Hello! How can I help?"])

    outcome = await orchestrator.run("hello", [], BOTH)

    assert outcome.success
    assert outcome.mode == "standard"
    assert not outcome.used_tool
    assert outcome.response == "Hello! How can I help?"
    assert len(llm.calls) == 2
    assert llm.calls[1]["json_mode"] is False
    assert gmail_api.requests == [] and teams_api.requests == []


@pytest.mark.asyncio
async def test_planner_direct_answer(make_orchestrator) -> None:
    orchestrator, _ = make_orchestrator(
        [classification(email=True), direct_answer("You can archive mail from the inbox.")]
    )

    outcome = await orchestrator.run("how do I archive mail?", [], BOTH)

    assert outcome.mode == "standard"
    assert outcome.response == "You can archive mail from the inbox."
    assert outcome.missing_providers is None


@pytest.mark.asyncio
async def test_unconnected_domain_suggests_sign_in(make_orchestrator) -> None:
    orchestrator, llm = make_orchestrator(
        [classification(email=True), "I can help once you sign in with Google."]
    )

    outcome = await orchestrator.run("any new emails?", [], TEAMS_ONLY)

    assert outcome.success
    assert outcome.mode == "standard"
    assert outcome.missing_providers == ["gmail"]
    assert "Google" in llm.calls[1]["system"]


@pytest.mark.asyncio
async def test_history_is_passed_to_standard_chat(make_orchestrator) -> None:
    history = [
        ConversationTurn(role="user", content="my name is Sam"),
        # older frontends send "type": "bot"
        ConversationTurn.model_validate({"type": "bot", "content": "Nice to meet you, Sam."}),
    ]
    orchestrator, llm = make_orchestrator([classification(), "Your name is Sam."])

    await orchestrator.run("what's my name?", history, BOTH)

    prompt = llm.calls[1]["prompt"]
    assert "User: my name is Sam" in prompt
    assert "Assistant: Nice to meet you, Sam." in prompt


@pytest.mark.asyncio
async def test_llm_unavailable(make_orchestrator) -> None:
    orchestrator, _ = make_orchestrator([classification(), RuntimeError("model down")])

    outcome = await orchestrator.run("hello", [], BOTH)

    assert not outcome.success
    assert outcome.mode == "error"
    assert outcome.error_type == "llm_unavailable"


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_empty_required_field_asks_for_information(
    make_orchestrator, gmail_api: FakeProviderAPI
) -> None:
    orchestrator, llm = make_orchestrator(
        [
            classification(email=True),
            tool_call(
                "gmail_send_message",
                {"to": "bob.stone@contoso.com", "subject": "Hi", "body": ""},
            ),
        ]
    )

    outcome = await orchestrator.run("email bob", [], BOTH)

    assert not outcome.success
    assert outcome.error_type == "missing_information"
    assert outcome.missing_fields == ["body"]
    assert "body" in outcome.response
    assert gmail_api.requests == []
    assert len(llm.calls) == 2


@pytest.mark.asyncio
async def test_placeholder_address_is_rejected(
    make_orchestrator, gmail_api: FakeProviderAPI
) -> None:
    orchestrator, _ = make_orchestrator(
        [
            classification(email=True),
            tool_call(
                "gmail_send_message",
                {"to": "<bob's email>", "subject": "Hi", "body": "Hello Bob"},
            ),
        ]
    )

    outcome = await orchestrator.run("email bob hello", [], BOTH)

    assert outcome.error_type == "missing_information"
    assert outcome.missing_fields == ["to"]
    assert gmail_api.requests == []


def test_template_looking_values_are_accepted_when_known() -> None:
    addresses = ["the-team@company.com", "her_office@clinic.org", "support@example.com"]

    for address in addresses:
        assert placeholder_fields({"to": address}) == ["to"]
        assert placeholder_fields({"to": address}, f"please write to {address.upper()}") == []
    assert placeholder_fields({"to": "<bob's email>"}, "email <bob's email>") == ["to"]


@pytest.mark.asyncio
async def test_user_typed_address_is_sent(make_orchestrator, gmail_api: FakeProviderAPI) -> None:
    gmail_api.routes = {("POST", "/messages/send"): {"id": "s1", "threadId": "t1"}}
    orchestrator, _ = make_orchestrator(
        [
            classification(email=True),
            tool_call(
                "gmail_send_message",
                {"to": "the-team@company.com", "subject": "Hi", "body": "hi all"},
            ),
            "Sent.",
        ]
    )

    outcome = await orchestrator.run("Email the-team@company.com saying hi all", [], BOTH)

    assert outcome.success
    assert outcome.mode == "tool"
    sent = request_json(gmail_api.calls("POST", "/messages/send")[0])
    assert "To: the-team@company.com" in decode_base64url(sent["raw"])


@pytest.mark.asyncio
async def test_address_found_in_earlier_step_is_sent(
    make_orchestrator, gmail_api: FakeProviderAPI, teams_api: FakeProviderAPI
) -> None:
    chats = graph_chats()
    chats["value"][2]["members"][1]["email"] = "user@company.com"
    teams_api.routes = {("GET", "/me/chats"): chats}
    gmail_api.routes = {("POST", "/messages/send"): {"id": "s1", "threadId": "t1"}}
    orchestrator, _ = make_orchestrator(
        [
            classification(email=True, teams=True),
            tool_call("teams_find_chat_by_name", {"participantName": "Bob"}, next_step=True),
            tool_call(
                "gmail_send_message",
                {"to": "user@company.com", "subject": "Notes", "body": "Here they are."},
            ),
            "Emailed Bob.",
        ]
    )

    outcome = await orchestrator.run("find Bob in Teams and email him the notes", [], BOTH)

    assert outcome.mode == "tool_multi_step"
    assert len(gmail_api.calls("POST", "/messages/send")) == 1


@pytest.mark.asyncio
async def test_guessed_optional_argument_is_dropped(
    make_orchestrator, gmail_api: FakeProviderAPI
) -> None:
    gmail_api.routes = {("POST", "/messages/send"): {"id": "s1", "threadId": "t1"}}
    orchestrator, _ = make_orchestrator(
        [
            classification(email=True),
            tool_call(
                "gmail_send_message",
                {"to": "bob.stone@contoso.com", "cc": "none", "subject": "Hi", "body": "Hello"},
            ),
            "Sent.",
        ]
    )

    outcome = await orchestrator.run("email bob.stone@contoso.com hello", [], BOTH)

    assert outcome.success
    raw = decode_base64url(request_json(gmail_api.calls("POST", "/messages/send")[0])["raw"])
    assert "Cc:" not in raw


@pytest.mark.asyncio
async def test_unknown_tool(make_orchestrator) -> None:
    orchestrator, _ = make_orchestrator(
        [classification(email=True), tool_call("teams_list_chats")]
    )

    # teams tools are not offered for an email-only request
    outcome = await orchestrator.run("list my email", [], BOTH)

    assert outcome.mode == "error"
    assert outcome.error_type == "unknown_tool"
    assert outcome.tool_name == "teams_list_chats"


@pytest.mark.asyncio
async def test_tool_of_unconnected_provider_requires_auth(
    make_orchestrator, gmail_api: FakeProviderAPI
) -> None:
    orchestrator, _ = make_orchestrator(
        [classification(email=True, teams=True), tool_call("gmail_list_messages")]
    )

    outcome = await orchestrator.run("check my mail and teams", [], TEAMS_ONLY)

    assert outcome.mode == "auth_required"
    assert outcome.required_provider == "gmail"
    assert "Google" in outcome.response
    assert gmail_api.requests == []


# ---------------------------------------------------------------------------
# Multi-step chains
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_cross_provider_chain(
    make_orchestrator, gmail_api: FakeProviderAPI, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {("GET", "/me/chats"): graph_chats()}
    gmail_api.routes = {("POST", "/messages/send"): {"id": "s1", "threadId": "t1"}}
    orchestrator, llm = make_orchestrator(
        [
            classification(email=True, teams=True),
            tool_call(
                "teams_find_chat_by_name",
                {"participantName": "Bob"},
                next_step=True,
                description="Email Bob the notes",
            ),
            tool_call(
                "gmail_send_message",
                {"to": "bob.stone@contoso.com", "subject": "Notes", "body": "Here they are."},
            ),
            "Found Bob in Teams and emailed him the notes.",
        ]
    )

    outcome = await orchestrator.run("find Bob in Teams and email him the notes", [], BOTH)

    assert outcome.success
    assert outcome.mode == "tool_multi_step"
    assert [s.tool_name for s in outcome.steps] == [
        "teams_find_chat_by_name",
        "gmail_send_message",
    ]
    assert [s.provider for s in outcome.steps] == ["teams", "gmail"]
    assert outcome.tool_result["messageId"] == "s1"

    second_plan = llm.calls[2]["prompt"]
    assert "RESULT OF STEP 1 (teams_find_chat_by_name)" in second_plan
    assert "bob.stone@contoso.com" in second_plan
    assert "GOAL OF THIS STEP:\nEmail Bob the notes" in second_plan

    sent = request_json(gmail_api.calls("POST", "/messages/send")[0])
    assert "To: bob.stone@contoso.com" in decode_base64url(sent["raw"])


@pytest.mark.asyncio
async def test_step_bound_gives_partial_answer(
    make_orchestrator, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {("GET", "/me/chats"): graph_chats()}
    again = tool_call("teams_list_chats", next_step=True, description="keep looking")
    orchestrator, llm = make_orchestrator(
        [classification(teams=True), again, dict(again), "Here is what I found so far."],
        max_steps=2,
    )

    outcome = await orchestrator.run("look through everything", [], BOTH)

    assert outcome.success
    assert outcome.partial
    assert outcome.mode == "partial"
    assert len(outcome.steps) == 2
    assert len(llm.calls) == 4
    assert "step limit was reached" in llm.calls[3]["prompt"]


@pytest.mark.asyncio
async def test_planner_stops_when_answer_is_known(
    make_orchestrator, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {("GET", "/me/chats"): graph_chats()}
    orchestrator, _ = make_orchestrator(
        [
            classification(teams=True),
            tool_call("teams_list_chats", next_step=True),
            direct_answer("done"),
            "You have three chats.",
        ]
    )

    outcome = await orchestrator.run("list my chats", [], BOTH)

    assert outcome.mode == "tool"
    assert outcome.response == "You have three chats."


@pytest.mark.asyncio
async def test_cancelled_between_steps(make_orchestrator, teams_api: FakeProviderAPI) -> None:
    teams_api.routes = {("GET", "/me/chats"): graph_chats()}
    orchestrator, llm = make_orchestrator(
        [classification(teams=True), tool_call("teams_list_chats", next_step=True)]
    )

    async def disconnected() -> bool:
        return True

    outcome = await orchestrator.run("list my chats", [], BOTH, is_cancelled=disconnected)

    assert outcome.error_type == "cancelled"
    assert outcome.used_tool
    assert len(llm.calls) == 2


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_expired_google_token(
    make_orchestrator,
    gmail: GmailExecutor,
    teams: TeamsExecutor,
    gmail_api: FakeProviderAPI,
    teams_api: FakeProviderAPI,
) -> None:
    gmail_api.routes = {
        ("GET", "/profile"): {"emailAddress": "me@contoso.com"},
        ("GET", "/messages"): (401, {"error": {"message": "Invalid Credentials"}}),
    }
    teams_api.routes = {("GET", "/me"): {"id": "u-me", "displayName": "Morgan Lee"}}
    await gmail.execute("gmail_get_profile", {}, GOOGLE_TOKEN)
    await teams.execute("teams_get_user_profile", {}, MICROSOFT_TOKEN)
    orchestrator, _ = make_orchestrator(
        [classification(email=True), tool_call("gmail_list_messages")]
    )

    outcome = await orchestrator.run("show my inbox", [], BOTH)

    assert not outcome.success
    assert outcome.response == "Your Google session has expired. Please sign in again."
    assert outcome.error_type == "auth_expired"
    assert outcome.required_provider == "gmail"
    assert len(gmail_api.calls("GET", "/messages")) == 1
    # only the failing provider's cache is dropped
    assert len(gmail.cache) == 0
    assert len(teams.cache) == 1


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_internal_error(make_orchestrator) -> None:
    orchestrator, _ = make_orchestrator([classification(email=True)])

    def broken(providers):
        raise RuntimeError("registry exploded")

    orchestrator.gateway.list_tools = broken

    outcome = await orchestrator.run("list my email", [], BOTH)

    assert not outcome.success
    assert outcome.error_type == "internal_error"


def test_status_reports_connected_domains(make_orchestrator) -> None:
    orchestrator, _ = make_orchestrator([])

    status = orchestrator.status(TEAMS_ONLY)

    assert status["domains"]["email"]["connected"] is False
    assert status["domains"]["teams"]["connected"] is True
    assert len(status["domains"]["email"]["tools"]) == 6
    assert len(status["availableTools"]) == 17
    assert all(name.startswith("teams_") for name in status["availableTools"])
