"""Gmail tool declarations."""

from typing import List

from workmate.core.schema import (
    ToolDeclaration,
    ToolParameter,
)
from workmate.tools import register_tools

PROVIDER = "gmail"

GMAIL_TOOLS: List[ToolDeclaration] = [
    ToolDeclaration(
        name="gmail_list_messages",
        provider=PROVIDER,
        description="List emails from the Gmail inbox with an optional Gmail search query",
        parameters=[
            ToolParameter(
                name="maxResults",
                type="integer",
                description="Maximum number of messages to return (default: 10)",
                default=10,
            ),
            ToolParameter(
                name="query",
                description='Gmail search query (e.g. "from:user@example.com", "is:unread", '
                '"after:2024/01/01")',
            ),
        ],
    ),
    ToolDeclaration(
        name="gmail_get_message",
        provider=PROVIDER,
        description="Get full details of a specific email by ID, including its decoded body",
        parameters=[
            ToolParameter(
                name="messageId",
                description="The ID of the message to retrieve",
                required=True,
            ),
        ],
    ),
    ToolDeclaration(
        name="gmail_search_messages",
        provider=PROVIDER,
        description="Search emails by sender, recipient, subject, date range, attachment or "
        "unread state",
        parameters=[
            ToolParameter(name="from", description="Filter by sender email or name"),
            ToolParameter(name="to", description="Filter by recipient email"),
            ToolParameter(name="subject", description="Filter by subject keywords"),
            ToolParameter(name="after", description="Date after (YYYY/MM/DD)"),
            ToolParameter(name="before", description="Date before (YYYY/MM/DD)"),
            ToolParameter(
                name="hasAttachment",
                type="boolean",
                description="Only messages with attachments",
            ),
            ToolParameter(name="isUnread", type="boolean", description="Only unread messages"),
            ToolParameter(
                name="maxResults",
                type="integer",
                description="Maximum results (default: 20)",
                default=20,
            ),
        ],
    ),
    ToolDeclaration(
        name="gmail_send_message",
        provider=PROVIDER,
        mutating=True,
        description="Send an email via Gmail. 'to' must be a real email address taken from the "
        "user's message or a previous tool result",
        parameters=[
            ToolParameter(
                name="to",
                description="Recipient email address(es), comma-separated",
                required=True,
            ),
            ToolParameter(name="subject", description="Email subject", required=True),
            ToolParameter(
                name="body",
                description="Email body written from the user's request (never empty)",
                required=True,
            ),
            ToolParameter(name="cc", description="CC recipients (comma-separated)"),
            ToolParameter(name="bcc", description="BCC recipients (comma-separated)"),
        ],
    ),
    ToolDeclaration(
        name="gmail_list_labels",
        provider=PROVIDER,
        description="List the Gmail labels (folders) of the mailbox",
    ),
    ToolDeclaration(
        name="gmail_get_profile",
        provider=PROVIDER,
        description="Get the signed-in Gmail account address and mailbox totals",
    ),
]

register_tools(PROVIDER, GMAIL_TOOLS)
