"""Prepare chat message records for display.

A record is any mapping with a ``role`` and a ``text`` key, as returned by a
conversation/session API. Each one is labelled, classified as user or agent
and has its body rendered with :func:`chatmark.render.render`.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from typing import Any

from chatmark.errors import ChatmarkInputError
from chatmark.render import render

USER_ROLES = frozenset({"USER", "ENDUSER"})
AGENT_ROLES = frozenset({"AGENT", "SYSTEM"})

USER_CSS_CLASS = "message user-message"
AGENT_CSS_CLASS = "message agent-message"


@dataclass(frozen=True)
class RoleLabels:
    user: str = "You"
    agent: str = "Agent"


@dataclass(frozen=True)
class RenderedMessage:
    role: str
    role_label: str
    is_user: bool
    css_class: str
    text: str
    html: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def is_user_role(role: str | None) -> bool:
    return (role or "").upper() in USER_ROLES


def role_label(
    role: str | None,
    agent_name: str | None = None,
    *,
    labels: RoleLabels = RoleLabels(),
) -> str:
    """Human-readable label for `role`; unknown roles are upper-cased."""

    if not role:
        return ""
    upper = role.upper()
    if upper in USER_ROLES:
        return labels.user
    if upper in AGENT_ROLES:
        return agent_name or labels.agent
    return upper


def render_message(
    record: Mapping[str, Any],
    *,
    agent_name: str | None = None,
    labels: RoleLabels = RoleLabels(),
) -> RenderedMessage:
    if not isinstance(record, Mapping):
        raise ChatmarkInputError(
            f"Expected a message record (mapping), got {type(record).__name__}."
        )

    role = record.get("role") or ""
    if not isinstance(role, str):
        raise ChatmarkInputError(f"Message role must be a string, got {type(role).__name__}.")

    text = record.get("text")
    if text is None:
        text = ""
    if not isinstance(text, str):
        raise ChatmarkInputError(f"Message text must be a string, got {type(text).__name__}.")

    is_user = is_user_role(role)
    return RenderedMessage(
        role=role.upper(),
        role_label=role_label(role, agent_name, labels=labels),
        is_user=is_user,
        css_class=USER_CSS_CLASS if is_user else AGENT_CSS_CLASS,
        text=text,
        html=render(text),
    )


def render_messages(
    records: Iterable[Mapping[str, Any]],
    *,
    agent_name: str | None = None,
    labels: RoleLabels = RoleLabels(),
) -> list[RenderedMessage]:
    return [render_message(r, agent_name=agent_name, labels=labels) for r in records]


def parse_messages_json(raw: str) -> list[Mapping[str, Any]]:
    """Parse a JSON list of records, or an object holding one under "messages"."""

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ChatmarkInputError(f"Invalid message JSON: {e}") from e

    if isinstance(data, dict):
        data = data.get("messages")
    if not isinstance(data, list):
        raise ChatmarkInputError(
            'Expected a JSON list of messages or an object with a "messages" list.'
        )
    return data
