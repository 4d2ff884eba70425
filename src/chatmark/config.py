"""Project configuration loading for Chatmark.

Only the command line, watch mode and MCP server read this; `render()` itself
takes no options. The module reads `chatmark.toml` and performs light
validation.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from chatmark.errors import ChatmarkConfigError

CONFIG_FILENAME = "chatmark.toml"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class MessagesConfig:
    user_label: str
    agent_label: str


@dataclass(frozen=True)
class WatchConfig:
    suffixes: list[str]
    out_dir: str
    debounce_ms: int


@dataclass(frozen=True)
class MCPConfig:
    enabled: bool


@dataclass(frozen=True)
class LoggingConfig:
    level: str


@dataclass(frozen=True)
class ChatmarkConfig:
    version: int
    messages: MessagesConfig
    watch: WatchConfig
    mcp: MCPConfig
    logging: LoggingConfig


def default_config() -> ChatmarkConfig:
    """Configuration used when no `chatmark.toml` exists."""

    return _build_config({})


def find_project_root(start: Path) -> Path:
    """Walk upward from `start` (file or directory) looking for `chatmark.toml`."""

    cur = start
    try:
        if cur.is_file():
            cur = cur.parent
    except OSError:
        # If `start` is a broken symlink or otherwise non-stat'able, treat as a
        # path we can still walk from.
        cur = cur.parent

    cur = cur.resolve()
    while True:
        if (cur / CONFIG_FILENAME).is_file():
            return cur
        if cur.parent == cur:
            break
        cur = cur.parent

    raise ChatmarkConfigError(
        f"Could not find {CONFIG_FILENAME} by walking upward from start path."
    )


def _as_table(value: Any, *, name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ChatmarkConfigError(f"Expected [{name}] to be a table.")
    return value


def _as_str_list(value: Any, *, name: str) -> list[str]:
    if not isinstance(value, list) or any(not isinstance(x, str) for x in value):
        raise ChatmarkConfigError(f"Expected {name} to be a list of strings.")
    return list(value)


def _as_bool(value: Any, *, name: str) -> bool:
    if not isinstance(value, bool):
        raise ChatmarkConfigError(f"Expected {name} to be a boolean.")
    return value


def _as_int(value: Any, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ChatmarkConfigError(f"Expected {name} to be an integer.")
    return value


def _as_str(value: Any, *, name: str) -> str:
    if not isinstance(value, str):
        raise ChatmarkConfigError(f"Expected {name} to be a string.")
    return value


def _build_config(data: dict[str, Any]) -> ChatmarkConfig:
    messages_tbl = _as_table(data.get("messages"), name="messages")
    watch_tbl = _as_table(data.get("watch"), name="watch")
    mcp_tbl = _as_table(data.get("mcp"), name="mcp")
    logging_tbl = _as_table(data.get("logging"), name="logging")

    if "user_label" in messages_tbl:
        user_label = _as_str(messages_tbl["user_label"], name="messages.user_label")
    else:
        user_label = "You"

    if "agent_label" in messages_tbl:
        agent_label = _as_str(messages_tbl["agent_label"], name="messages.agent_label")
    else:
        agent_label = "Agent"

    if "suffixes" in watch_tbl:
        suffixes = _as_str_list(watch_tbl["suffixes"], name="watch.suffixes")
    else:
        suffixes = [".md", ".markdown", ".txt"]

    if "out_dir" in watch_tbl:
        out_dir = _as_str(watch_tbl["out_dir"], name="watch.out_dir")
    else:
        out_dir = "rendered"

    if "debounce_ms" in watch_tbl:
        debounce_ms = _as_int(watch_tbl["debounce_ms"], name="watch.debounce_ms")
    else:
        debounce_ms = 200

    if "enabled" in mcp_tbl:
        mcp_enabled = _as_bool(mcp_tbl["enabled"], name="mcp.enabled")
    else:
        mcp_enabled = True

    if "level" in logging_tbl:
        level = _as_str(logging_tbl["level"], name="logging.level").upper()
    else:
        level = "WARNING"

    # Validation
    if any(not s.startswith(".") for s in suffixes):
        raise ChatmarkConfigError(
            "Invalid config: watch.suffixes entries must start with '.' (e.g. \".md\")."
        )

    if not out_dir.strip():
        raise ChatmarkConfigError("Invalid config: watch.out_dir must not be empty.")

    if debounce_ms < 0:
        raise ChatmarkConfigError("Invalid config: watch.debounce_ms must be >= 0.")

    if level not in LOG_LEVELS:
        raise ChatmarkConfigError(
            f"Invalid config: logging.level must be one of {', '.join(LOG_LEVELS)}."
        )

    return ChatmarkConfig(
        version=1,
        messages=MessagesConfig(user_label=user_label, agent_label=agent_label),
        watch=WatchConfig(suffixes=suffixes, out_dir=out_dir, debounce_ms=debounce_ms),
        mcp=MCPConfig(enabled=mcp_enabled),
        logging=LoggingConfig(level=level),
    )


def load_config(*, root: Path | None = None, config_path: Path | None = None) -> ChatmarkConfig:
    """Load and validate `chatmark.toml`.

    If neither `root` nor `config_path` are provided, the project root is
    discovered by walking upward from the current working directory.
    """

    if config_path is None:
        if root is None:
            root = find_project_root(Path.cwd())
        config_path = root / CONFIG_FILENAME

    try:
        raw = config_path.read_bytes()
    except FileNotFoundError as e:
        raise ChatmarkConfigError(f"Missing {CONFIG_FILENAME} at: {config_path}") from e
    except OSError as e:
        raise ChatmarkConfigError(f"Failed reading config file: {config_path}") from e

    try:
        data = tomllib.loads(raw.decode("utf-8"))
    except UnicodeDecodeError as e:
        raise ChatmarkConfigError(f"Config is not valid UTF-8: {config_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ChatmarkConfigError(f"Invalid TOML in {config_path}: {e}") from e

    version = data.get("version", None)
    if version is None:
        raise ChatmarkConfigError(f"Missing required `version = 1` in {CONFIG_FILENAME}.")
    version_i = _as_int(version, name="version")
    if version_i != 1:
        raise ChatmarkConfigError(f"Unsupported config version: {version_i} (expected 1).")

    return _build_config(data)
