"""MCP server for Chatmark: exposes render/detect/render_messages as MCP tools.

The server uses FastMCP (optional dependency) for the transport layer.
Core tool functions are plain Python and can be tested without FastMCP installed.
"""

from __future__ import annotations

import json

from chatmark.detect import looks_like_html
from chatmark.errors import ChatmarkInputError
from chatmark.messages import RoleLabels, parse_messages_json, render_messages
from chatmark.render import render

# ---------------------------------------------------------------------------
# Core tool functions (no FastMCP dependency)
# ---------------------------------------------------------------------------


def tool_render(*, text: str | None = None) -> str:
    """Render message text and return a JSON envelope with the HTML."""
    return json.dumps(
        {
            "command": "render",
            "ok": True,
            "is_html": looks_like_html(text),
            "html": render(text),
        }
    )


def tool_detect(*, text: str | None = None) -> str:
    """Classify message text as HTML or Markdown."""
    is_html = looks_like_html(text)
    return json.dumps(
        {
            "command": "detect",
            "ok": True,
            "is_html": is_html,
            "kind": "html" if is_html else "markdown",
        }
    )


def tool_render_messages(
    *,
    messages_json: str,
    agent_name: str | None = None,
    labels: RoleLabels = RoleLabels(),
) -> str:
    """Render a JSON list of {role, text} records."""
    try:
        records = parse_messages_json(messages_json)
        rendered = render_messages(records, agent_name=agent_name, labels=labels)
    except ChatmarkInputError as e:
        return json.dumps({"command": "render_messages", "ok": False, "error": str(e)})
    return json.dumps(
        {
            "command": "render_messages",
            "ok": True,
            "messages": [m.to_dict() for m in rendered],
        }
    )


# ---------------------------------------------------------------------------
# FastMCP server factory
# ---------------------------------------------------------------------------


def create_mcp_server(*, labels: RoleLabels = RoleLabels()):
    """Create and return a FastMCP server with chatmark tools registered.

    Raises ImportError if fastmcp is not installed.
    """
    from fastmcp import FastMCP

    mcp = FastMCP("chatmark", instructions="Render chat message text (HTML/Markdown) to HTML")

    @mcp.tool()
    def chatmark_render(text: str) -> str:
        """Render chat message text to HTML.

        Text that already contains structural HTML is returned unchanged;
        Markdown or plain text is converted. Returns JSON with the HTML.
        """
        return tool_render(text=text)

    @mcp.tool()
    def chatmark_detect(text: str) -> str:
        """Report whether message text is already HTML or Markdown/plain text."""
        return tool_detect(text=text)

    @mcp.tool()
    def chatmark_render_messages(messages_json: str, agent_name: str | None = None) -> str:
        """Render a conversation.

        `messages_json` is a JSON list of {"role": ..., "text": ...} records
        (or an object with a "messages" list). Returns JSON with one entry per
        message: role label, user/agent flag, CSS class and rendered HTML.
        """
        return tool_render_messages(
            messages_json=messages_json, agent_name=agent_name, labels=labels
        )

    return mcp


def run_server(*, labels: RoleLabels = RoleLabels()) -> None:
    """Entry point: create and run the MCP server (stdio transport)."""
    mcp = create_mcp_server(labels=labels)
    mcp.run()
