"""Teams executor against a fake Microsoft Graph API."""

import pytest
from fakes import (
    MICROSOFT_TOKEN,
    FakeProviderAPI,
    graph_chats,
    graph_message,
    request_json,
)

from workmate.core.errors import (
    EntityNotFoundError,
    ToolValidationError,
)
from workmate.providers.teams import TeamsExecutor

JOINED_TEAMS = {
    "value": [
        {"id": "team-eng", "displayName": "Engineering", "description": "Builders"},
        {"id": "team-ops", "displayName": "Operations"},
    ]
}
ENG_CHANNELS = {
    "value": [
        {"id": "ch-design", "displayName": "Design"},
        {"id": "ch-general", "displayName": "General"},
    ]
}
ME = {"id": "u-me", "displayName": "Morgan Lee", "mail": "morgan@contoso.com"}


async def run(teams: TeamsExecutor, tool: str, **args: object) -> dict:
    return (await teams.execute(tool, args, MICROSOFT_TOKEN)).data()


# ---------------------------------------------------------------------------
# Chat lookup
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_find_chat_prefers_one_on_one(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {("GET", "/me/chats"): graph_chats()}

    result = await run(teams, "teams_find_chat_by_name", participantName="alice")

    assert [c["id"] for c in result["matches"]] == ["chat-alice", "chat-phoenix"]
    assert result["matches"][0]["members"][1]["email"] == "alice.wong@contoso.com"
    assert teams_api.requests[0].url.params["$expand"] == "members"


@pytest.mark.asyncio
async def test_find_chat_by_topic_and_no_match(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {("GET", "/me/chats"): graph_chats()}

    by_topic = await run(teams, "teams_find_chat_by_name", chatName="phoenix")
    missing = await run(teams, "teams_find_chat_by_name", chatName="Zed")

    assert [c["id"] for c in by_topic["matches"]] == ["chat-phoenix"]
    assert missing["totalMatches"] == 0
    assert missing["knownChats"] == ["Project Phoenix"]
    # chat list served from cache the second time
    assert len(teams_api.calls("GET", "/me/chats")) == 1


@pytest.mark.asyncio
async def test_find_chat_needs_a_search_term(teams: TeamsExecutor) -> None:
    with pytest.raises(ToolValidationError) as info:
        await run(teams, "teams_find_chat_by_name")

    assert info.value.fields == ["chatName", "participantName"]


# ---------------------------------------------------------------------------
# Sending
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_send_message_to_existing_chat(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {
        ("GET", "/me/chats"): graph_chats(),
        ("POST", "/chats/chat-alice/messages"): {"id": "msg-1"},
    }

    result = await run(teams, "teams_send_message", participantName="Alice", message="Hi!")

    assert result["chatId"] == "chat-alice"
    assert result["createdChat"] is False
    posted = request_json(teams_api.calls("POST", "/chats/chat-alice/messages")[0])
    assert posted == {"body": {"contentType": "text", "content": "Hi!"}}


@pytest.mark.asyncio
async def test_send_message_creates_chat_when_none_exists(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {
        ("GET", "/me/chats"): graph_chats(),
        ("GET", "/me"): ME,
        ("GET", "/users/carol@contoso.com"): {
            "id": "u-carol",
            "displayName": "Carol Diaz",
            "mail": "carol@contoso.com",
        },
        ("POST", "/chats"): {"id": "chat-carol"},
        ("POST", "/chats/chat-carol/messages"): {"id": "msg-2"},
    }

    result = await run(
        teams, "teams_send_message", participantEmail="carol@contoso.com", message="Welcome!"
    )

    assert result["chatId"] == "chat-carol"
    assert result["createdChat"] is True
    created = request_json(teams_api.calls("POST", "/chats")[0])
    assert created["chatType"] == "oneOnOne"
    assert [m["user@odata.bind"] for m in created["members"]] == [
        "https://graph.test/users('u-me')",
        "https://graph.test/users('u-carol')",
    ]

    # the new chat must show up on the next listing
    await run(teams, "teams_list_chats")
    assert len(teams_api.calls("GET", "/me/chats")) == 2


@pytest.mark.asyncio
async def test_send_message_group_chat_from_emails(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {
        ("GET", "/me"): ME,
        ("GET", "/users/dan@contoso.com"): {"id": "u-dan"},
        ("GET", "/users/eve@contoso.com"): {"id": "u-eve"},
        ("POST", "/chats"): {"id": "chat-group"},
        ("POST", "/chats/chat-group/messages"): {"id": "msg-3"},
    }

    result = await run(
        teams,
        "teams_send_message",
        participantEmails=["dan@contoso.com", "eve@contoso.com"],
        message="Kickoff at 10",
    )

    assert result["createdChat"] is True
    assert request_json(teams_api.calls("POST", "/chats")[0])["chatType"] == "group"


@pytest.mark.asyncio
async def test_send_message_with_team_goes_to_general_channel(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {
        ("GET", "/me/joinedTeams"): JOINED_TEAMS,
        ("GET", "/teams/team-eng/channels"): ENG_CHANNELS,
        ("POST", "/teams/team-eng/channels/ch-general/messages"): {"id": "post-1"},
    }

    result = await run(teams, "teams_send_message", teamName="engineering", message="Deployed")

    assert result["team"] == "Engineering"
    assert result["channel"] == "General"
    assert result["messageId"] == "post-1"


@pytest.mark.asyncio
async def test_send_message_unknown_chat_name(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {("GET", "/me/chats"): graph_chats()}

    with pytest.raises(EntityNotFoundError) as info:
        await run(teams, "teams_send_message", chatName="Board room", message="hi")

    assert info.value.alternatives == ["Project Phoenix"]
    assert not [r for r in teams_api.requests if r.method == "POST"]


@pytest.mark.asyncio
async def test_send_message_without_target(teams: TeamsExecutor) -> None:
    with pytest.raises(ToolValidationError):
        await run(teams, "teams_send_message", message="hello?")


# ---------------------------------------------------------------------------
# Reading chats and channels
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_list_messages_drops_system_events(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {
        ("GET", "/chats/chat-alice/messages"): {
            "value": [
                graph_message("1", "Alice", "<p>Hello <b>there</b></p>", "2024-05-09T10:00:00Z"),
                graph_message("2", "System", "", "2024-05-09T09:00:00Z", "systemEventMessage"),
            ]
        }
    }

    result = await run(teams, "teams_list_messages", chatId="chat-alice")

    assert result["totalMessages"] == 1
    assert result["messages"][0]["body"] == "Hello there"
    assert result["messages"][0]["from"]["displayName"] == "Alice"


@pytest.mark.asyncio
async def test_list_messages_unknown_participant(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {("GET", "/me/chats"): graph_chats()}

    with pytest.raises(EntityNotFoundError, match="Zed"):
        await run(teams, "teams_list_messages", participantName="Zed")


@pytest.mark.asyncio
async def test_search_messages_across_chats(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {
        ("GET", "/me/chats"): graph_chats(),
        ("GET", "/chats/chat-phoenix/messages"): {
            "value": [
                graph_message("p1", "Alice", "Budget review at 3", "2024-05-08T15:00:00Z"),
                graph_message("p2", "Bob", "lunch?", "2024-05-09T11:00:00Z"),
            ]
        },
        ("GET", "/chats/chat-alice/messages"): {
            "value": [
                graph_message("a1", "Alice", "The budget is approved", "2024-05-09T12:00:00Z")
            ]
        },
        # no access to one chat: skipped, the search still answers
        ("GET", "/chats/chat-bob/messages"): (403, {"error": {"message": "Forbidden"}}),
    }

    result = await run(teams, "teams_search_messages", query="budget")
    from_bob = await run(teams, "teams_search_messages", query="budget", **{"from": "bob"})

    assert [m["id"] for m in result["messages"]] == ["a1", "p1"]
    assert result["messages"][0]["chatId"] == "chat-alice"
    assert result["messages"][1]["chatTopic"] == "Project Phoenix"
    assert from_bob["totalResults"] == 0


@pytest.mark.asyncio
async def test_channel_messages_resolve_names(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {
        ("GET", "/me/joinedTeams"): JOINED_TEAMS,
        ("GET", "/teams/team-eng/channels"): ENG_CHANNELS,
        ("GET", "/teams/team-eng/channels/ch-design/messages"): {
            "value": [graph_message("c1", "Alice", "New mockups", "2024-05-09T08:00:00Z")]
        },
    }

    result = await run(
        teams, "teams_get_channel_messages", teamName="eng", channelName="design"
    )

    assert result["channel"] == "Design"
    assert result["messages"][0]["body"] == "New mockups"


@pytest.mark.asyncio
async def test_unknown_team_lists_alternatives(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {("GET", "/me/joinedTeams"): JOINED_TEAMS}

    with pytest.raises(EntityNotFoundError) as info:
        await run(teams, "teams_list_channels", teamName="Marketing")

    assert info.value.alternatives == ["Engineering", "Operations"]


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_calendar_events_default_window(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {("GET", "/me/calendarView"): {"value": []}}

    result = await run(teams, "teams_list_calendar_events")

    params = teams_api.requests[0].url.params
    assert params["startDateTime"] == "2024-05-05T00:00:00.000Z"
    assert params["endDateTime"] == "2024-05-10T23:59:59.999Z"
    assert params["$top"] == "50"
    assert result["totalEvents"] == 0


@pytest.mark.asyncio
async def test_calendar_events_specific_date(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    teams_api.routes = {
        ("GET", "/me/calendars/cal-2/calendarView"): {
            "value": [
                {
                    "id": "ev1",
                    "subject": "Standup",
                    "start": {"dateTime": "2024-05-07T09:00:00", "timeZone": "UTC"},
                    "end": {"dateTime": "2024-05-07T09:15:00", "timeZone": "UTC"},
                    "location": {"displayName": "Room 4"},
                    "attendees": [
                        {
                            "emailAddress": {"name": "Alice", "address": "alice@contoso.com"},
                            "status": {"response": "accepted"},
                        }
                    ],
                }
            ]
        }
    }

    result = await run(
        teams, "teams_list_calendar_events", specificDate="2024-05-07", calendarId="cal-2"
    )

    params = teams_api.requests[0].url.params
    assert params["startDateTime"] == "2024-05-07T00:00:00.000Z"
    assert params["endDateTime"] == "2024-05-07T23:59:59.999Z"
    event = result["events"][0]
    assert event["location"] == "Room 4"
    assert event["attendees"] == [
        {"name": "Alice", "email": "alice@contoso.com", "status": "accepted"}
    ]


@pytest.mark.asyncio
async def test_calendar_window_rejects_reversed_range(teams: TeamsExecutor) -> None:
    with pytest.raises(ToolValidationError):
        await run(
            teams,
            "teams_list_calendar_events",
            startDateTime="2024-05-09T10:00:00Z",
            endDateTime="2024-05-08T10:00:00Z",
        )


@pytest.mark.asyncio
async def test_create_online_event(teams: TeamsExecutor, teams_api: FakeProviderAPI) -> None:
    teams_api.routes = {
        ("POST", "/me/calendar/events"): {
            "id": "ev9",
            "subject": "Design sync",
            "onlineMeeting": {"joinUrl": "https://teams.test/join/ev9"},
        }
    }

    result = await run(
        teams,
        "teams_create_calendar_event",
        subject="Design sync",
        startDateTime="2024-05-13T15:00:00",
        endDateTime="2024-05-13T15:30:00",
        attendees="alice@contoso.com, bob.stone@contoso.com",
        isOnlineMeeting="true",
    )

    body = request_json(teams_api.requests[0])
    assert body["start"] == {"dateTime": "2024-05-13T15:00:00", "timeZone": "UTC"}
    assert [a["emailAddress"]["address"] for a in body["attendees"]] == [
        "alice@contoso.com",
        "bob.stone@contoso.com",
    ]
    assert body["onlineMeetingProvider"] == "teamsForBusiness"
    assert result["joinUrl"] == "https://teams.test/join/ev9"


@pytest.mark.asyncio
async def test_update_event_needs_a_change(
    teams: TeamsExecutor, teams_api: FakeProviderAPI
) -> None:
    with pytest.raises(ToolValidationError):
        await run(teams, "teams_update_calendar_event", eventId="ev9")

    assert teams_api.requests == []


@pytest.mark.asyncio
async def test_update_and_delete_event(teams: TeamsExecutor, teams_api: FakeProviderAPI) -> None:
    teams_api.routes = {
        ("PATCH", "/me/calendars/cal-2/events/ev9"): {"id": "ev9"},
        ("DELETE", "/me/calendar/events/ev9"): (204, None),
    }

    updated = await run(
        teams,
        "teams_update_calendar_event",
        eventId="ev9",
        calendarId="cal-2",
        location="Room 7",
    )
    deleted = await run(teams, "teams_delete_calendar_event", eventId="ev9")

    assert updated["updatedFields"] == ["location"]
    assert request_json(teams_api.requests[0]) == {"location": {"displayName": "Room 7"}}
    assert deleted == {
        "success": True,
        "eventId": "ev9",
        "message": "Calendar event deleted successfully",
    }


@pytest.mark.asyncio
async def test_user_profile_is_cached(teams: TeamsExecutor, teams_api: FakeProviderAPI) -> None:
    teams_api.routes = {("GET", "/me"): ME}

    first = await run(teams, "teams_get_user_profile")
    await run(teams, "teams_get_user_profile")

    assert first["email"] == "morgan@contoso.com"
    assert len(teams_api.requests) == 1
