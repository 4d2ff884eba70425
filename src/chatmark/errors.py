"""Chatmark exception hierarchy.

Keep this module small and dependency-free: it is imported broadly across the
project and by tests. The core renderer never raises any of these; they belong
to the outer surfaces (config, files, message records).
"""


class ChatmarkError(Exception):
    """Base exception for all Chatmark errors."""


class ChatmarkConfigError(ChatmarkError):
    """Raised for invalid user configuration."""


class ChatmarkInputError(ChatmarkError):
    """Raised when a source file, output file or message record cannot be used."""
