"""Gmail executor (Gmail REST API v1)."""

import asyncio
import logging
from email.message import EmailMessage
from email.utils import parseaddr
from typing import (
    Any,
    Dict,
    List,
)

import httpx

from workmate.config import settings
from workmate.core.errors import (
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
    decode_base64url,
    encode_base64url,
    html_to_text,
    truncate,
)
from workmate.providers.resolution import looks_like_email
from workmate.providers.retry import RetryPolicy
from workmate.tools.gmail import PROVIDER

logger = logging.getLogger(__name__)

METADATA_HEADERS = ["From", "To", "Subject", "Date"]


def _header(headers: List[Dict[str, str]] | None, name: str) -> str:
    wanted = name.lower()
    for header in headers or []:
        if header.get("name", "").lower() == wanted:
            return header.get("value", "")
    return ""


def _find_part_data(part: Dict[str, Any], mime_type: str) -> str | None:
    """Depth-first search for the first non-empty body of *mime_type*."""
    if part.get("mimeType") == mime_type and not part.get("filename"):
        data = (part.get("body") or {}).get("data")
        if data:
            return data
    for child in part.get("parts") or []:
        found = _find_part_data(child, mime_type)
        if found:
            return found
    return None


def extract_body(payload: Dict[str, Any] | None) -> str:
    """Plain-text body of a Gmail message payload, preferring text/plain over text/html."""
    if not payload:
        return ""
    plain = _find_part_data(payload, "text/plain")
    if plain:
        return decode_base64url(plain).strip()
    html = _find_part_data(payload, "text/html")
    if html:
        return html_to_text(decode_base64url(html))
    # single-part message with an unusual mime type
    return decode_base64url((payload.get("body") or {}).get("data")).strip()


def _attachments(part: Dict[str, Any]) -> List[Dict[str, Any]]:
    found: List[Dict[str, Any]] = []
    if part.get("filename"):
        found.append(
            {
                "filename": part["filename"],
                "mimeType": part.get("mimeType"),
                "size": (part.get("body") or {}).get("size"),
            }
        )
    for child in part.get("parts") or []:
        found.extend(_attachments(child))
    return found


def _split_addresses(value: str | None) -> List[str]:
    """Addresses of a comma-separated header value; unparseable entries are kept verbatim."""
    found: List[str] = []
    for chunk in (value or "").split(","):
        chunk = chunk.strip()
        if chunk:
            _, addr = parseaddr(chunk)
            found.append(addr if looks_like_email(addr) else chunk)
    return found


class GmailExecutor(BaseProviderExecutor):
    """Runs the ``gmail_*`` tools for one signed-in Google account."""

    PROVIDER = PROVIDER
    DISPLAY_NAME = "Google"
    ERROR_MESSAGES = {
        ErrorCategory.AUTH_EXPIRED: "Your Google session has expired. Please sign in again.",
        ErrorCategory.RATE_LIMITED: "Gmail API rate limit reached. Please try again in a moment.",
        ErrorCategory.PERMISSION_DENIED: "You don't have permission to access this Gmail resource.",
        ErrorCategory.NOT_FOUND: "The requested Gmail message or resource was not found.",
        ErrorCategory.INVALID_REQUEST: "Gmail rejected the request: {detail}",
        ErrorCategory.TRANSIENT: "Gmail is temporarily unavailable. Please try again later.",
        ErrorCategory.UNKNOWN: "Gmail API error: {detail}",
    }

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str | None = None,
        retry: RetryPolicy | None = None,
        cache: TTLCache | None = None,
        timeout: float | None = None,
        detail_limit: int | None = None,
    ) -> None:
        super().__init__(client, base_url or settings.GMAIL_API_BASE, retry, cache, timeout)
        self.detail_limit = settings.GMAIL_DETAIL_LIMIT if detail_limit is None else detail_limit

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    async def _message_summary(self, ref: Dict[str, Any], token: str) -> Dict[str, Any]:
        detail = await self._request(
            "GET",
            f"/messages/{path_segment(ref['id'])}",
            token,
            params={"format": "metadata", "metadataHeaders": METADATA_HEADERS},
        )
        headers = (detail.get("payload") or {}).get("headers")
        label_ids = detail.get("labelIds") or []
        return {
            "id": ref["id"],
            "threadId": ref.get("threadId") or detail.get("threadId"),
            "from": _header(headers, "From"),
            "to": _header(headers, "To"),
            "subject": _header(headers, "Subject"),
            "date": _header(headers, "Date"),
            "snippet": truncate(detail.get("snippet")),
            "isUnread": "UNREAD" in label_ids,
        }

    @handles("gmail_list_messages")
    async def list_messages(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        """List message summaries; details are fetched concurrently for the first entries."""
        params: Dict[str, Any] = {"maxResults": args["maxResults"]}
        if args.get("query"):
            params["q"] = args["query"]
        listing = await self._request("GET", "/messages", token, params=params)
        refs = listing.get("messages") or []
        if not refs:
            return {"totalMessages": 0, "messages": [], "message": "No messages found"}

        wanted = refs[: self.detail_limit]
        details = await asyncio.gather(
            *(self._message_summary(ref, token) for ref in wanted), return_exceptions=True
        )
        messages: List[Dict[str, Any]] = []
        for ref, detail in zip(wanted, details):
            if isinstance(detail, ProviderError) and detail.category == ErrorCategory.AUTH_EXPIRED:
                raise detail
            if isinstance(detail, Exception):
                logger.warning("Skipping message %s: %s", ref.get("id"), detail)
                continue
            if isinstance(detail, BaseException):
                raise detail
            messages.append(detail)

        return {"totalMessages": len(refs), "query": args.get("query") or "", "messages": messages}

    @handles("gmail_get_message")
    async def get_message(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        """Fetch one message with its decoded body."""
        message = await self._request(
            "GET",
            f"/messages/{path_segment(args['messageId'])}",
            token,
            params={"format": "full"},
        )
        payload = message.get("payload") or {}
        headers = payload.get("headers")
        return {
            "id": message.get("id"),
            "threadId": message.get("threadId"),
            "from": _header(headers, "From"),
            "to": _header(headers, "To"),
            "cc": _header(headers, "Cc"),
            "subject": _header(headers, "Subject"),
            "date": _header(headers, "Date"),
            "body": truncate(extract_body(payload)),
            "snippet": message.get("snippet"),
            "labelIds": message.get("labelIds") or [],
            "attachments": _attachments(payload),
        }

    @handles("gmail_search_messages")
    async def search_messages(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        """Translate structured filters into a Gmail query and list the matches."""
        parts: List[str] = []
        for key in ("from", "to", "subject", "after", "before"):
            value = args.get(key)
            if value:
                value = str(value).strip()
                parts.append(f'{key}:"{value}"' if " " in value else f"{key}:{value}")
        if args.get("hasAttachment"):
            parts.append("has:attachment")
        if args.get("isUnread"):
            parts.append("is:unread")
        return await self.list_messages(
            {"maxResults": args["maxResults"], "query": " ".join(parts)}, token
        )

    @handles("gmail_send_message")
    async def send_message(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        """Send a plain-text email."""
        recipients = {field: _split_addresses(args.get(field)) for field in ("to", "cc", "bcc")}
        bad_fields = [
            field
            for field, addresses in recipients.items()
            if any(not looks_like_email(addr) for addr in addresses)
        ]
        if not recipients["to"] and "to" not in bad_fields:
            bad_fields.insert(0, "to")
        if bad_fields:
            raise ToolValidationError(
                "Invalid email address in: " + ", ".join(bad_fields),
                fields=bad_fields,
                provider=self.PROVIDER,
            )

        email = EmailMessage()
        headers = {"To": "to", "Cc": "cc", "Bcc": "bcc", "Subject": "subject"}
        for header, field in headers.items():
            if not args.get(field) and header != "Subject":
                continue
            try:
                email[header] = args.get(field) or ""
            except ValueError as exc:
                # the email package refuses CR/LF in header values
                raise ToolValidationError(
                    f"Invalid value for {field}: {exc}", fields=[field], provider=self.PROVIDER
                ) from exc
        email.set_content(args["body"])

        sent = await self._request(
            "POST",
            "/messages/send",
            token,
            json={"raw": encode_base64url(email.as_bytes())},
        )
        self._invalidate("profile", token)
        return {
            "success": True,
            "messageId": sent.get("id"),
            "threadId": sent.get("threadId"),
            "to": recipients["to"],
            "subject": args["subject"],
            "message": "Email sent successfully",
        }

    # ------------------------------------------------------------------
    # Mailbox metadata (cached)
    # ------------------------------------------------------------------
    @handles("gmail_list_labels")
    async def list_labels(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        async def load() -> List[Dict[str, Any]]:
            response = await self._request("GET", "/labels", token)
            return [
                {"id": label.get("id"), "name": label.get("name"), "type": label.get("type")}
                for label in response.get("labels") or []
            ]

        labels = await self._cached("labels", token, load)
        return {"totalLabels": len(labels), "labels": labels}

    @handles("gmail_get_profile")
    async def get_profile(self, args: Dict[str, Any], token: str) -> Dict[str, Any]:
        async def load() -> Dict[str, Any]:
            profile = await self._request("GET", "/profile", token)
            return {
                "emailAddress": profile.get("emailAddress"),
                "messagesTotal": profile.get("messagesTotal"),
                "threadsTotal": profile.get("threadsTotal"),
            }

        return await self._cached("profile", token, load)
