"""Decide whether message text is already HTML.

A full parser is unnecessary: the only goal is to avoid running markup that
came from a rich-text source through the Markdown converter a second time.
"""

from __future__ import annotations

import re

# Structural tags only. The name must be followed by whitespace, "/" or ">" so
# that e.g. "<pizza>" or "<b2b>" do not count.
#   <\/?              - opening or closing delimiter
#   (p|br|...|table)  - allowlisted tag name
#   [\s/>]            - attribute gap, self-closing slash or tag end
HTML_TAG_PATTERN = re.compile(
    r"<\/?(p|br|strong|b|em|i|ul|ol|li|h[1-6]|a|div|span|blockquote|pre|code|table)[\s/>]",
    re.IGNORECASE,
)


def looks_like_html(text: str | None) -> bool:
    """Return True if `text` contains a recognised structural HTML tag."""

    if not text:
        return False
    return HTML_TAG_PATTERN.search(text) is not None
