"""Entry point that turns raw message text into displayable HTML."""

from __future__ import annotations

import logging

from chatmark.detect import looks_like_html
from chatmark.markdown import markdown_to_html

logger = logging.getLogger("chatmark.render")


def render(text: str | None) -> str:
    """Return an HTML string for `text`, safe to hand to a sanitizing renderer.

    Text that already contains structural HTML is returned unchanged; anything
    else goes through the Markdown converter. Never raises for string input.
    """

    if not text:
        return ""
    if looks_like_html(text):
        logger.debug("Passing through %d chars of HTML unchanged", len(text))
        return text
    logger.debug("Converting %d chars of Markdown/plain text", len(text))
    return markdown_to_html(text)


# Name used by chat views that render message bodies.
render_message_content = render
