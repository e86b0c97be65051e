"""Microsoft Teams executor (Microsoft Graph v1.0): chats, channels, calendar and profile."""

import asyncio
import logging
from datetime import (
    date,
    datetime,
    time,
    timedelta,
    timezone,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Sequence,
)

import httpx

from workmate.config import settings
from workmate.core.errors import (
    EntityNotFoundError,
    ErrorCategory,
    ProviderError,
    ToolValidationError,
)
from workmate.providers.base import (
    BaseProviderExecutor,
    handles,
    path_segment,
)
from workmate.providers.cache import TTLCache
from workmate.providers.normalize import (
    message_body_text,
    truncate,
)
from workmate.providers.resolution import (
    best_match,
    looks_like_email,
    rank,
)
from workmate.providers.retry import RetryPolicy
from workmate.tools.teams import PROVIDER

logger = logging.getLogger(__name__)

CHAT_PAGE_SIZE = 50
SEARCH_CONCURRENCY = 5
DEFAULT_EVENT_WINDOW_DAYS = 5
GENERAL_CHANNEL = "General"
MEMBER_ODATA_TYPE = "#microsoft.graph.aadUserConversationMember"


# ---------------------------------------------------------------------------
# Normalizers
# ---------------------------------------------------------------------------
def _chat(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": raw.get("id"),
        "topic": raw.get("topic") or "No topic",
        "chatType": raw.get("chatType"),
        "lastUpdatedDateTime": raw.get("lastUpdatedDateTime"),
        "members": [
            {
                "userId": member.get("userId"),
                "displayName": member.get("displayName"),
                "email": member.get("email"),
            }
            for member in raw.get("members") or []
        ],
    }


def _message(raw: Dict[str, Any]) -> Dict[str, Any]:
    sender = (raw.get("from") or {}).get("user") or {}
    return {
        "id": raw.get("id"),
        "from": {"userId": sender.get("id"), "displayName": sender.get("displayName")},
        "body": message_body_text(raw.get("body")),
        "createdDateTime": raw.get("createdDateTime"),
        "importance": raw.get("importance"),
    }


def _user_messages(raw_messages: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # system events (member added, topic renamed, ...) carry no user content
    return [
        _message(raw)
        for raw in raw_messages
        if raw.get("messageType", "message") == "message"
    ]


def _event(raw: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": raw.get("id"),
        "subject": raw.get("subject"),
        "start": raw.get("start"),
        "end": raw.get("end"),
        "location": (raw.get("location") or {}).get("displayName"),
        "isOnlineMeeting": raw.get("isOnlineMeeting"),
        "joinUrl": (raw.get("onlineMeeting") or {}).get("joinUrl"),
        "organizer": ((raw.get("organizer") or {}).get("emailAddress") or {}).get("name"),
        "attendees": [
            {
                "name": (a.get("emailAddress") or {}).get("name"),
                "email": (a.get("emailAddress") or {}).get("address"),
                "status": (a.get("status") or {}).get("response"),
            }
            for a in raw.get("attendees") or []
        ],
        "bodyPreview": truncate(raw.get("bodyPreview")),
    }


def _member_names(chat: Dict[str, Any]) -> List[str | None]:
    names: List[str | None] = []
    for member in chat["members"]:
        names.extend([member.get("displayName"), member.get("email")])
    return names


def _chat_keys(chat: Dict[str, Any]) -> List[str | None]:
    topic = chat["topic"] if chat["topic"] != "No topic" else None
    return [topic, *_member_names(chat)]


def _is_one_on_one(chat: Dict[str, Any]) -> int:
    return 1 if chat.get("chatType") == "oneOnOne" else 0


def _parse_datetime(value: str, field: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise ToolValidationError(
            f"'{field}' must be an ISO 8601 date or date-time", fields=[field], provider=PROVIDER
        ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def _attendees(emails: Sequence[str]) -> List[Dict[str, Any]]:
    return [{"emailAddress": {"address": email}, "type": "required"} for email in emails]


class TeamsExecutor(BaseProviderExecutor):
    """Runs the ``teams_*`` tools for one signed-in Microsoft account."""

    PROVIDER = PROVIDER
    DISPLAY_NAME = "Microsoft"
    ERROR_MESSAGES = {
        ErrorCategory.AUTH_EXPIRED: "Your Microsoft Teams session has expired. "
        "Please sign in again.",
        ErrorCategory.RATE_LIMITED: "Microsoft Teams API rate limit reached. "
        "Please try again in a moment.",
        ErrorCategory.PERMISSION_DENIED: "You don't have permission to access this Teams resource.",
        ErrorCategory.NOT_FOUND: "The requested Teams resource was not found.",
        ErrorCategory.INVALID_REQUEST: "Microsoft Graph rejected the request: {detail}",
        ErrorCategory.TRANSIENT: "Microsoft Teams is temporarily unavailable. "
        "Please try again later.",
        ErrorCategory.UNKNOWN: "Microsoft Graph API error: {detail}",
    }

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str | None = None,
        retry: RetryPolicy | None = None,
        cache: TTLCache | None = None,
        timeout: float | None = None,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(client, base_url or settings.GRAPH_API_BASE, retry, cache, timeout)
        self._now = now or (lambda: datetime.now(timezone.utc))

    # ------------------------------------------------------------------
    # Cached lookups
    # ------------------------------------------------------------------
    async def _chats(self, token: str) -> List[Dict[str, Any]]:
        async def load() -> List[Dict[str, Any]]:
            response = await self._request(
                "GET",
                "/me/chats",
                token,
                params={"$expand": "members", "$top": CHAT_PAGE_SIZE},
            )
            return [_chat(raw) for raw in response.get("value") or []]

        return await self._cached("chats", token, load)

    async def _joined_teams(self, token: str) -> List[Dict[str, Any]]:
        async def load() -> List[Dict[str, Any]]:
            response = await self._request("GET", "/me/joinedTeams", token)
            return [
                {
                    "id": team.get("id"),
                    "displayName": team.get("displayName"),
                    "description": team.get("description"),
                }
                for team in response.get("value") or []
            ]

        return await self._cached("teams", token, load)

    async def _me(self, token: str) -> Dict[str, Any]:
        async def load() -> Dict[str, Any]:
            user = await self._request("GET", "/me", token)
            return {
                "id": user.get("id"),
                "displayName": user.get("displayName"),
                "email": user.get("mail") or user.get("userPrincipalName"),
                "jobTitle": user.get("jobTitle"),
                "officeLocation": user.get("officeLocation"),
                "mobilePhone": user.get("mobilePhone"),
                "businessPhones": user.get("businessPhones") or [],
            }

        return await self._cached("profile", token, load)

    # ------------------------------------------------------------------
    # Entity resolution
    # ------------------------------------------------------------------
    async def _find_chat(
        self, token: str, chat_name: str | None = None, participant: str | None = None
    ) -> Dict[str, Any] | None:
        chats = await self._chats(token)
        if participant:
            # a direct conversation beats a group that happens to include the person
            return best_match(participant, chats, _member_names, tiebreak=_is_one_on_one)
        if chat_name:
            return best_match(chat_name, chats, _chat_keys)
        return None

    async def _resolve_chat_id(
        self,
        token: str,
        chat_id: str | None,
        chat_name: str | None,
        participant: str | None,
    ) -> str:
        if chat_id:
            return chat_id
        if not chat_name and not participant:
            raise ToolValidationError(
                "Say which chat to use: chatId, chatName or participantName",
                fields=["chatId", "chatName", "participantName"],
                provider=self.PROVIDER,
            )
        chat = await self._find_chat(token, chat_name, participant)
        if chat is None:
            chats = await self._chats(token)
            raise EntityNotFoundError(
                participant or chat_name or "",
                "chat",
                alternatives=[c["topic"] for c in chats if c["topic"] != "No topic"]
                or [n for c in chats for n in _member_names(c) if n],
                provider=self.PROVIDER,
            )
        return chat["id"]

    async def _resolve_team(
        self, token: str, team_id: str | None, team_name: str | None
    ) -> Dict[str, Any]:
        if team_id:
            return {"id": team_id, "displayName": team_name or team_id}
        if not team_name:
            raise ToolValidationError(
                "Say which team to use: teamId or teamName",
                fields=["teamId", "teamName"],
                provider=self.PROVIDER,
            )
        teams = await self._joined_teams(token)
        team = best_match(team_name, teams, lambda t: [t.get("displayName")])
        if team is None:
            raise EntityNotFoundError(
                team_name,
                "team",
                alternatives=[t["displayName"] for t in teams if t.get("displayName")],
                provider=self.PROVIDER,
            )
        return team

    async def _list_channels(self, token: str, team_id: str) -> List[Dict[str, Any]]:
        response = await self._request("GET", f"/teams/{path_segment(team_id)}/channels", token)
        return [
            {
                "id": channel.get("id"),
                "displayName": channel.get("displayName"),
                "description": channel.get("description"),
                "membershipType": channel.get("membershipType"),
            }
            for channel in response.get("value") or []
        ]

    async def _resolve_channel(
        self,
        token: str,
        team: Dict[str, Any],
        channel_id: str | None,
        channel_name: str | None,
    ) -> Dict[str, Any]:
        if channel_id:
            return {"id": channel_id, "displayName": channel_name or channel_id}
        channels = await self._list_channels(token, team["id"])
        if channel_name:
            channel = best_match(channel_name, channels, lambda c: [c.get("displayName")])
        else:
            channel = next(
                (c for c in channels if c.get("displayName") == GENERAL_CHANNEL),
                channels[0] if channels else None,
            )
        if channel is None:
            raise EntityNotFoundError(
                channel_name or GENERAL_CHANNEL,
                "channel",
                alternatives=[c["displayName"] for c in channels if c.get("displayName")],
                provider=self.PROVIDER,
            )
        return channel

    async def _lookup_user(self, token: str, identifier: str) -> Dict[str, Any]:
        """Resolve an email address or display name to a directory user."""
        if looks_like_email(identifier):
            try:
                user = await self._request("GET", f"/users/{path_segment(identifier)}", token)
            except ProviderError as exc:
                if exc.category == ErrorCategory.NOT_FOUND:
                    raise EntityNotFoundError(identifier, "user", provider=self.PROVIDER) from exc
                raise
            return user

        escaped = identifier.replace("'", "''")
        response = await self._request(
            "GET",
            "/users",
            token,
            params={"$filter": f"startswith(displayName,'{escaped}')", "$top": 10},
        )
        candidates = response.get("value") or []
        user = best_match(
            identifier, candidates, lambda u: [u.get("displayName"), u.get("mail")]
        )
        if user is None:
            raise EntityNotFoundError(
                identifier,
                "user",
                alternatives=[u["displayName"] for u in candidates if u.get("displayName")],
                provider=self.PROVIDER,
            )
        return user

    def _member_binding(self, user_id: str) -> Dict[str, Any]:
        return {
            "@odata.type": MEMBER_ODATA_TYPE,
            "roles": ["owner"],
            "user@odata.bind": f"{self.base_url}/users('{user_id}')",
        }

    async def _create_chat(self, token: str, identifiers: Sequence[str]) -> Dict[str, Any]:
        """Create a chat between the signed-in user and *identifiers*."""
        me = await self._me(token)
        users = [await self._lookup_user(token, identifier) for identifier in identifiers]
        member_ids = [me["id"]] + [u["id"] for u in users if u.get("id") != me["id"]]
        chat_type = "oneOnOne" if len(member_ids) <= 2 else "group"
        chat = await self._request(
            "POST",
            "/chats",
            token,
            json={
                "chatType": chat_type,
                "members": [self._member_binding(user_id) for user_id in member_ids],
            },
        )
        self._invalidate("chats", token)
        logger.info("Created %s chat %s", chat_type, chat.get("id"))
        return {"id": chat.get("id"), "chatType": chat_type, "users": users}

    @staticmethod
    def _channel_messages_path(team: Dict[str, Any], channel: Dict[str, Any]) -> str:
        return f"/teams/{path_segment(team['id'])}/channels/{path_segment(channel['id'])}/messages"

    async def _post(self, token: str, path: str, message: str) -> Dict[str, Any]:
        return await self._request(
            "POST", path, token, json={"body": {"contentType": "text", "content": message}}
        )

    # ------------------------------------------------------------------
    # Chats
    # ------------------------------------------------------------------
    @handles("teams_list_chats")
    async def list_chats(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        chats = (await self._chats(token))[: args["maxResults"]]
        return {"totalChats": len(chats), "chats": chats}

    @handles("teams_list_messages")
    async def list_messages(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        chat_id = await self._resolve_chat_id(
            token, args.get("chatId"), args.get("chatName"), args.get("participantName")
        )
        response = await self._request(
            "GET",
            f"/chats/{path_segment(chat_id)}/messages",
            token,
            params={"$top": args["maxResults"], "$orderby": "createdDateTime desc"},
        )
        messages = _user_messages(response.get("value") or [])
        return {"totalMessages": len(messages), "chatId": chat_id, "messages": messages}

    @handles("teams_find_chat_by_name")
    async def find_chat_by_name(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        """Chats matching a topic or participant, best match first, with member emails."""
        chat_name, participant = args.get("chatName"), args.get("participantName")
        if not chat_name and not participant:
            raise ToolValidationError(
                "Either chatName or participantName is required",
                fields=["chatName", "participantName"],
                provider=self.PROVIDER,
            )
        chats = await self._chats(token)
        if participant:
            matches = rank(participant, chats, _member_names, tiebreak=_is_one_on_one)
        else:
            matches = rank(chat_name, chats, _chat_keys)
        result: Dict[str, Any] = {
            "searchTerm": participant or chat_name,
            "totalMatches": len(matches),
            "matches": matches,
        }
        if not matches:
            result["message"] = f'No chat matching "{participant or chat_name}" was found.'
            result["knownChats"] = [c["topic"] for c in chats if c["topic"] != "No topic"][:10]
        return result

    @handles("teams_create_one_on_one_chat")
    async def create_one_on_one_chat(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        target = args.get("userId") or args.get("userEmail")
        if not target:
            raise ToolValidationError(
                "Either userId or userEmail is required",
                fields=["userId", "userEmail"],
                provider=self.PROVIDER,
            )
        if args.get("userId"):
            me = await self._me(token)
            chat = await self._request(
                "POST",
                "/chats",
                token,
                json={
                    "chatType": "oneOnOne",
                    "members": [
                        self._member_binding(me["id"]),
                        self._member_binding(args["userId"]),
                    ],
                },
            )
            self._invalidate("chats", token)
            chat_id = chat.get("id")
        else:
            chat_id = (await self._create_chat(token, [target]))["id"]
        return {
            "success": True,
            "chatId": chat_id,
            "message": "One-on-one chat created successfully",
        }

    @handles("teams_send_message")
    async def send_message(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        """
        Send a chat message, or a General channel post when ``teamName`` is given.

        Chat resolution order: explicit ``chatId``; the best one-on-one chat with the participant;
        the best chat by topic; otherwise a new chat is created with the participant(s).
        """
        message = args["message"]

        if args.get("teamName"):
            team = await self._resolve_team(token, None, args["teamName"])
            channel = await self._resolve_channel(token, team, None, None)
            posted = await self._post(token, self._channel_messages_path(team, channel), message)
            return {
                "success": True,
                "team": team["displayName"],
                "channel": channel["displayName"],
                "messageId": posted.get("id"),
                "message": "Channel message posted successfully",
            }

        participant = args.get("participantEmail") or args.get("participantName")
        group = [email for email in args.get("participantEmails") or [] if email]
        chat_id = args.get("chatId")
        created = False

        if not chat_id and (participant or args.get("chatName")):
            chat = await self._find_chat(token, args.get("chatName"), participant)
            if chat is not None:
                chat_id = chat["id"]

        if not chat_id:
            targets = group or ([participant] if participant else [])
            if not targets:
                if args.get("chatName"):
                    chats = await self._chats(token)
                    raise EntityNotFoundError(
                        args["chatName"],
                        "chat",
                        alternatives=[c["topic"] for c in chats if c["topic"] != "No topic"],
                        provider=self.PROVIDER,
                    )
                raise ToolValidationError(
                    "Say who or which chat the message is for",
                    fields=["chatId", "participantName", "participantEmail"],
                    provider=self.PROVIDER,
                )
            chat_id = (await self._create_chat(token, targets))["id"]
            created = True

        posted = await self._post(token, f"/chats/{path_segment(chat_id)}/messages", message)
        return {
            "success": True,
            "chatId": chat_id,
            "messageId": posted.get("id"),
            "createdChat": created,
            "message": "Message sent successfully",
        }

    @handles("teams_search_messages")
    async def search_messages(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        """Scan recent chats concurrently for messages containing the query."""
        query = args["query"].lower()
        sender = (args.get("from") or "").lower()
        after = _parse_datetime(args["after"], "after") if args.get("after") else None
        before = _parse_datetime(args["before"], "before") if args.get("before") else None
        chats = await self._chats(token)
        gate = asyncio.Semaphore(SEARCH_CONCURRENCY)

        async def scan(chat: Dict[str, Any]) -> List[Dict[str, Any]]:
            async with gate:
                response = await self._request(
                    "GET",
                    f"/chats/{path_segment(chat['id'])}/messages",
                    token,
                    params={"$top": CHAT_PAGE_SIZE},
                )
            hits: List[Dict[str, Any]] = []
            for msg in _user_messages(response.get("value") or []):
                if query not in msg["body"].lower():
                    continue
                if sender and sender not in (msg["from"]["displayName"] or "").lower():
                    continue
                if (after or before) and msg.get("createdDateTime"):
                    created_at = _parse_datetime(msg["createdDateTime"], "createdDateTime")
                    if (after and created_at < after) or (before and created_at > before):
                        continue
                hits.append({**msg, "chatId": chat["id"], "chatTopic": chat["topic"]})
            return hits

        results = await asyncio.gather(*(scan(chat) for chat in chats), return_exceptions=True)
        messages: List[Dict[str, Any]] = []
        for chat, result in zip(chats, results):
            if isinstance(result, ProviderError) and result.category == ErrorCategory.AUTH_EXPIRED:
                raise result
            if isinstance(result, Exception):
                logger.warning("Skipping chat %s during search: %s", chat["id"], result)
                continue
            if isinstance(result, BaseException):
                raise result
            messages.extend(result)

        messages.sort(key=lambda m: m.get("createdDateTime") or "", reverse=True)
        messages = messages[: args["maxResults"]]
        return {"totalResults": len(messages), "query": args["query"], "messages": messages}

    # ------------------------------------------------------------------
    # Teams and channels
    # ------------------------------------------------------------------
    @handles("teams_list_teams")
    async def list_teams(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        teams = await self._joined_teams(token)
        return {"totalTeams": len(teams), "teams": teams}

    @handles("teams_list_channels")
    async def list_channels(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        team = await self._resolve_team(token, args.get("teamId"), args.get("teamName"))
        channels = await self._list_channels(token, team["id"])
        return {
            "totalChannels": len(channels),
            "teamId": team["id"],
            "teamName": team["displayName"],
            "channels": channels,
        }

    @handles("teams_get_channel_messages")
    async def get_channel_messages(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        team = await self._resolve_team(token, args.get("teamId"), args.get("teamName"))
        channel = await self._resolve_channel(
            token, team, args.get("channelId"), args.get("channelName")
        )
        response = await self._request(
            "GET",
            self._channel_messages_path(team, channel),
            token,
            params={"$top": args["maxResults"]},
        )
        messages = _user_messages(response.get("value") or [])
        return {
            "totalMessages": len(messages),
            "teamId": team["id"],
            "channelId": channel["id"],
            "channel": channel["displayName"],
            "messages": messages,
        }

    @handles("teams_post_channel_message")
    async def post_channel_message(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        team = await self._resolve_team(token, args.get("teamId"), args.get("teamName"))
        channel = await self._resolve_channel(
            token, team, args.get("channelId"), args.get("channelName")
        )
        posted = await self._post(
            token,
            self._channel_messages_path(team, channel),
            args["message"],
        )
        return {
            "success": True,
            "messageId": posted.get("id"),
            "team": team["displayName"],
            "channel": channel["displayName"],
            "message": "Channel message posted successfully",
        }

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------
    def _event_path(self, event_id: str, calendar_id: str | None) -> str:
        if calendar_id:
            return f"/me/calendars/{path_segment(calendar_id)}/events/{path_segment(event_id)}"
        return f"/me/calendar/events/{path_segment(event_id)}"

    def _event_window(self, args: Dict[str, Any]) -> tuple[datetime, datetime]:
        if args.get("specificDate"):
            raw = str(args["specificDate"]).strip()[:10]
            try:
                day = date.fromisoformat(raw)
            except ValueError as exc:
                raise ToolValidationError(
                    "'specificDate' must be YYYY-MM-DD",
                    fields=["specificDate"],
                    provider=self.PROVIDER,
                ) from exc
            start = datetime.combine(day, time.min, tzinfo=timezone.utc)
            return start, start + timedelta(days=1) - timedelta(milliseconds=1)

        today = self._now().astimezone(timezone.utc).date()
        end_of_today = datetime.combine(today, time.max, tzinfo=timezone.utc)
        start = (
            _parse_datetime(args["startDateTime"], "startDateTime")
            if args.get("startDateTime")
            else None
        )
        end = (
            _parse_datetime(args["endDateTime"], "endDateTime") if args.get("endDateTime") else None
        )
        if start is None and end is None:
            first_day = today - timedelta(days=DEFAULT_EVENT_WINDOW_DAYS)
            return datetime.combine(first_day, time.min, tzinfo=timezone.utc), end_of_today
        if start is None:
            start = end - timedelta(days=DEFAULT_EVENT_WINDOW_DAYS)  # type: ignore[operator]
        if end is None:
            end = max(end_of_today, start + timedelta(days=1))
        if end < start:
            raise ToolValidationError(
                "'endDateTime' is before 'startDateTime'",
                fields=["startDateTime", "endDateTime"],
                provider=self.PROVIDER,
            )
        return start, end

    @handles("teams_list_calendars")
    async def list_calendars(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        response = await self._request("GET", "/me/calendars", token)
        calendars = [
            {
                "id": cal.get("id"),
                "name": cal.get("name"),
                "color": cal.get("color"),
                "isDefaultCalendar": cal.get("isDefaultCalendar"),
                "canEdit": cal.get("canEdit"),
                "owner": (cal.get("owner") or {}).get("name"),
            }
            for cal in response.get("value") or []
        ]
        return {"totalCalendars": len(calendars), "calendars": calendars}

    @handles("teams_list_calendar_events")
    async def list_calendar_events(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        """Events inside a window: a specific day, an explicit range or the last five days."""
        start, end = self._event_window(args)
        path = (
            f"/me/calendars/{path_segment(args['calendarId'])}/calendarView"
            if args.get("calendarId")
            else "/me/calendarView"
        )
        response = await self._request(
            "GET",
            path,
            token,
            params={
                "startDateTime": _iso(start),
                "endDateTime": _iso(end),
                "$top": args["maxResults"],
                "$orderby": "start/dateTime desc",
            },
        )
        events = [_event(raw) for raw in response.get("value") or []]
        return {
            "totalEvents": len(events),
            "startDateTime": _iso(start),
            "endDateTime": _iso(end),
            "events": events,
        }

    @handles("teams_get_calendar_event")
    async def get_calendar_event(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        raw = await self._request(
            "GET", self._event_path(args["eventId"], args.get("calendarId")), token
        )
        event = _event(raw)
        event.update(
            {
                "body": message_body_text(raw.get("body")),
                "recurrence": raw.get("recurrence"),
                "categories": raw.get("categories") or [],
                "importance": raw.get("importance"),
                "sensitivity": raw.get("sensitivity"),
            }
        )
        return event

    @handles("teams_create_calendar_event")
    async def create_calendar_event(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        tz = args["timeZone"]
        payload: Dict[str, Any] = {
            "subject": args["subject"],
            "body": {"contentType": "HTML", "content": args.get("body") or ""},
            "start": {"dateTime": args["startDateTime"], "timeZone": tz},
            "end": {"dateTime": args["endDateTime"], "timeZone": tz},
            "attendees": _attendees(args.get("attendees") or []),
            "isOnlineMeeting": args["isOnlineMeeting"],
        }
        if args.get("location"):
            payload["location"] = {"displayName": args["location"]}
        if args["isOnlineMeeting"]:
            payload["onlineMeetingProvider"] = "teamsForBusiness"

        path = (
            f"/me/calendars/{path_segment(args['calendarId'])}/events"
            if args.get("calendarId")
            else "/me/calendar/events"
        )
        event = await self._request("POST", path, token, json=payload)
        return {
            "success": True,
            "eventId": event.get("id"),
            "subject": event.get("subject"),
            "start": event.get("start"),
            "end": event.get("end"),
            "joinUrl": (event.get("onlineMeeting") or {}).get("joinUrl"),
            "message": "Calendar event created successfully",
        }

    @handles("teams_update_calendar_event")
    async def update_calendar_event(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        tz = args["timeZone"]
        changes: Dict[str, Any] = {}
        if args.get("subject"):
            changes["subject"] = args["subject"]
        if args.get("body"):
            changes["body"] = {"contentType": "HTML", "content": args["body"]}
        if args.get("startDateTime"):
            changes["start"] = {"dateTime": args["startDateTime"], "timeZone": tz}
        if args.get("endDateTime"):
            changes["end"] = {"dateTime": args["endDateTime"], "timeZone": tz}
        if args.get("attendees"):
            changes["attendees"] = _attendees(args["attendees"])
        if args.get("location"):
            changes["location"] = {"displayName": args["location"]}
        if not changes:
            raise ToolValidationError(
                "Nothing to update: give at least one field to change",
                fields=["subject", "startDateTime", "endDateTime", "location"],
                provider=self.PROVIDER,
            )

        event = await self._request(
            "PATCH", self._event_path(args["eventId"], args.get("calendarId")), token, json=changes
        )
        return {
            "success": True,
            "eventId": event.get("id") or args["eventId"],
            "updatedFields": sorted(changes),
            "message": "Calendar event updated successfully",
        }

    @handles("teams_delete_calendar_event")
    async def delete_calendar_event(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        await self._request(
            "DELETE", self._event_path(args["eventId"], args.get("calendarId")), token
        )
        return {
            "success": True,
            "eventId": args["eventId"],
            "message": "Calendar event deleted successfully",
        }

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------
    @handles("teams_get_user_profile")
    async def get_user_profile(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        return await self._me(token)
