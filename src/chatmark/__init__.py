from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

from chatmark.detect import looks_like_html
from chatmark.errors import ChatmarkConfigError, ChatmarkError, ChatmarkInputError
from chatmark.markdown import markdown_to_html
from chatmark.render import render, render_message_content


def _package_version() -> str:
    try:
        return version("chatmark")
    except PackageNotFoundError:
        # Running from a source checkout, or otherwise not installed.
        return "0.0.0"


__version__ = _package_version()

__all__ = [
    "ChatmarkConfigError",
    "ChatmarkError",
    "ChatmarkInputError",
    "__version__",
    "looks_like_html",
    "markdown_to_html",
    "render",
    "render_message_content",
]
