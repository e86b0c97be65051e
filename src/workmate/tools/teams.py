"""Microsoft Teams (chat, channel and calendar) tool declarations."""

from typing import List

from workmate.core.schema import (
    ToolDeclaration,
    ToolParameter,
)
from workmate.tools import register_tools

PROVIDER = "teams"

_MAX_RESULTS_20 = ToolParameter(
    name="maxResults",
    type="integer",
    description="Maximum number of items to return (default: 20)",
    default=20,
)
_CALENDAR_ID = ToolParameter(
    name="calendarId",
    description="Optional calendar ID. If omitted, uses the default calendar",
)
_TIME_ZONE = ToolParameter(
    name="timeZone",
    description='Time zone (e.g. "UTC", "America/New_York")',
    default="UTC",
)

TEAMS_TOOLS: List[ToolDeclaration] = [
    ToolDeclaration(
        name="teams_list_chats",
        provider=PROVIDER,
        description="List the user's recent Teams chats with their members",
        parameters=[
            ToolParameter(
                name="maxResults",
                type="integer",
                description="Maximum number of chats to return (default: 10)",
                default=10,
            ),
        ],
    ),
    ToolDeclaration(
        name="teams_list_messages",
        provider=PROVIDER,
        description="List messages from a Teams chat, identified by chatId, chat name or "
        "participant name",
        parameters=[
            ToolParameter(name="chatId", description="The ID of the chat (if known)"),
            ToolParameter(name="chatName", description="The name/topic of the chat"),
            ToolParameter(
                name="participantName",
                description="Name or email of a participant of the chat",
            ),
            _MAX_RESULTS_20,
        ],
    ),
    ToolDeclaration(
        name="teams_find_chat_by_name",
        provider=PROVIDER,
        description="Find Teams chats by name/topic or participant name. Returns chat members "
        "with their email addresses, so it is the lookup to use when a person's email is needed",
        parameters=[
            ToolParameter(name="chatName", description="The name/topic of the chat to find"),
            ToolParameter(
                name="participantName",
                description="Name or email of a participant in the chat",
            ),
        ],
    ),
    ToolDeclaration(
        name="teams_create_one_on_one_chat",
        provider=PROVIDER,
        mutating=True,
        description="Create a one-on-one chat with a specific user",
        parameters=[
            ToolParameter(name="userId", description="The Microsoft user ID of the person"),
            ToolParameter(
                name="userEmail",
                description="The email address of the person (alternative to userId)",
            ),
        ],
    ),
    ToolDeclaration(
        name="teams_send_message",
        provider=PROVIDER,
        mutating=True,
        description="Send a message to a Teams chat, or to a team's General channel when "
        "teamName is given. A one-on-one chat is created automatically when none exists "
        "with the participant",
        parameters=[
            ToolParameter(name="chatId", description="The ID of the chat (if known)"),
            ToolParameter(
                name="chatName",
                description="The name/topic of the chat (alternative to chatId)",
            ),
            ToolParameter(
                name="participantName",
                description="Name of a participant to find or create a one-on-one chat",
            ),
            ToolParameter(
                name="participantEmail",
                description="Email of a participant to find or create a one-on-one chat "
                "(preferred for one-on-one)",
            ),
            ToolParameter(
                name="participantEmails",
                type="array",
                items="string",
                description="Email addresses for a new group chat",
            ),
            ToolParameter(
                name="teamName",
                description="Post to this team's General channel instead of a chat",
            ),
            ToolParameter(
                name="message",
                description="The message content, written from the user's request (never empty)",
                required=True,
            ),
        ],
    ),
    ToolDeclaration(
        name="teams_list_teams",
        provider=PROVIDER,
        description="List the teams the user is a member of",
    ),
    ToolDeclaration(
        name="teams_list_channels",
        provider=PROVIDER,
        description="List channels in a team, identified by teamId or team name",
        parameters=[
            ToolParameter(name="teamId", description="The ID of the team"),
            ToolParameter(name="teamName", description="The display name of the team"),
        ],
    ),
    ToolDeclaration(
        name="teams_get_channel_messages",
        provider=PROVIDER,
        description="Get messages from a Teams channel. Team and channel may be given by ID "
        "or display name; the General channel is used when no channel is given",
        parameters=[
            ToolParameter(name="teamId", description="The ID of the team"),
            ToolParameter(name="teamName", description="The display name of the team"),
            ToolParameter(name="channelId", description="The ID of the channel"),
            ToolParameter(name="channelName", description="The display name of the channel"),
            _MAX_RESULTS_20,
        ],
    ),
    ToolDeclaration(
        name="teams_post_channel_message",
        provider=PROVIDER,
        mutating=True,
        description="Post a message to a Teams channel (team and channel by ID or display name)",
        parameters=[
            ToolParameter(name="teamId", description="The ID of the team"),
            ToolParameter(name="teamName", description="The display name of the team"),
            ToolParameter(name="channelId", description="The ID of the channel"),
            ToolParameter(name="channelName", description="The display name of the channel"),
            ToolParameter(
                name="message",
                description="The message content to post (never empty)",
                required=True,
            ),
        ],
    ),
    ToolDeclaration(
        name="teams_search_messages",
        provider=PROVIDER,
        description="Search message content across recent Teams chats",
        parameters=[
            ToolParameter(
                name="query",
                description="Text to look for in message content",
                required=True,
            ),
            ToolParameter(name="from", description="Filter by sender display name"),
            ToolParameter(name="after", description="Only messages after this ISO 8601 date"),
            ToolParameter(name="before", description="Only messages before this ISO 8601 date"),
            _MAX_RESULTS_20,
        ],
    ),
    ToolDeclaration(
        name="teams_list_calendars",
        provider=PROVIDER,
        description="List all calendars of the user",
    ),
    ToolDeclaration(
        name="teams_list_calendar_events",
        provider=PROVIDER,
        description="List calendar events. Defaults to the last 5 days; can filter by a "
        "specific date or a custom date range",
        parameters=[
            _CALENDAR_ID,
            ToolParameter(
                name="specificDate",
                description="Only events on this date (YYYY-MM-DD); overrides the range",
            ),
            ToolParameter(name="startDateTime", description="Range start (ISO 8601)"),
            ToolParameter(name="endDateTime", description="Range end (ISO 8601)"),
            ToolParameter(
                name="maxResults",
                type="integer",
                description="Maximum number of events to return (default: 50)",
                default=50,
            ),
        ],
    ),
    ToolDeclaration(
        name="teams_get_calendar_event",
        provider=PROVIDER,
        description="Get detailed information about a calendar event",
        parameters=[
            ToolParameter(name="eventId", description="The ID of the event", required=True),
            _CALENDAR_ID,
        ],
    ),
    ToolDeclaration(
        name="teams_create_calendar_event",
        provider=PROVIDER,
        mutating=True,
        description="Create a calendar event or Teams meeting",
        parameters=[
            ToolParameter(name="subject", description="Event title", required=True),
            ToolParameter(name="body", description="Event description (HTML supported)"),
            ToolParameter(
                name="startDateTime",
                description="Start date and time (ISO 8601)",
                required=True,
            ),
            ToolParameter(
                name="endDateTime",
                description="End date and time (ISO 8601)",
                required=True,
            ),
            ToolParameter(
                name="attendees",
                type="array",
                items="string",
                description="Attendee email addresses",
            ),
            ToolParameter(name="location", description="Physical location of the event"),
            ToolParameter(
                name="isOnlineMeeting",
                type="boolean",
                description="Create as a Teams online meeting",
                default=False,
            ),
            _CALENDAR_ID,
            _TIME_ZONE,
        ],
    ),
    ToolDeclaration(
        name="teams_update_calendar_event",
        provider=PROVIDER,
        mutating=True,
        description="Update an existing calendar event; only the given fields change",
        parameters=[
            ToolParameter(name="eventId", description="The ID of the event", required=True),
            _CALENDAR_ID,
            ToolParameter(name="subject", description="New title"),
            ToolParameter(name="body", description="New description"),
            ToolParameter(name="startDateTime", description="New start (ISO 8601)"),
            ToolParameter(name="endDateTime", description="New end (ISO 8601)"),
            ToolParameter(
                name="attendees",
                type="array",
                items="string",
                description="Replacement attendee email list",
            ),
            ToolParameter(name="location", description="New location"),
            _TIME_ZONE,
        ],
    ),
    ToolDeclaration(
        name="teams_delete_calendar_event",
        provider=PROVIDER,
        mutating=True,
        description="Delete a calendar event",
        parameters=[
            ToolParameter(name="eventId", description="The ID of the event", required=True),
            _CALENDAR_ID,
        ],
    ),
    ToolDeclaration(
        name="teams_get_user_profile",
        provider=PROVIDER,
        description="Get the signed-in Microsoft user's profile",
    ),
]

register_tools(PROVIDER, TEAMS_TOOLS)
