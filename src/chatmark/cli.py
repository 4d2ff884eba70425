from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from html import escape
from pathlib import Path
from typing import TYPE_CHECKING

from chatmark import __version__
from chatmark.errors import ChatmarkConfigError, ChatmarkInputError

if TYPE_CHECKING:  # pragma: no cover
    from chatmark.config import ChatmarkConfig
    from chatmark.watcher import WatchCycleResult


EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_INPUT = 3

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def _add_common_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--root",
        type=str,
        default=None,
        help="Project root (defaults to searching upward from cwd for chatmark.toml).",
    )
    p.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to chatmark.toml (defaults to <root>/chatmark.toml).",
    )
    verbosity = p.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true", help="Log debug output.")
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log errors.")


def _add_json_flag(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--json",
        dest="json_output",
        action="store_true",
        help="Emit a single JSON document on stdout.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chatmark")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    render_p = subparsers.add_parser("render", help="Render message text to HTML.")
    _add_common_flags(render_p)
    _add_json_flag(render_p)
    render_p.add_argument("path", nargs="?", default="-", help="Input file ('-' for stdin).")
    render_p.add_argument("-o", "--output", default=None, help="Write HTML to this file.")

    detect_p = subparsers.add_parser("detect", help="Report whether text is already HTML.")
    _add_common_flags(detect_p)
    _add_json_flag(detect_p)
    detect_p.add_argument("path", nargs="?", default="-", help="Input file ('-' for stdin).")

    messages_p = subparsers.add_parser("messages", help="Render a JSON list of chat messages.")
    _add_common_flags(messages_p)
    _add_json_flag(messages_p)
    messages_p.add_argument("path", nargs="?", default="-", help="JSON file ('-' for stdin).")
    messages_p.add_argument(
        "--agent-name",
        default=None,
        help="Label for agent/system messages (overrides messages.agent_label).",
    )

    watch_p = subparsers.add_parser("watch", help="Re-render source files when they change.")
    _add_common_flags(watch_p)
    _add_json_flag(watch_p)
    watch_p.add_argument(
        "paths",
        nargs="*",
        default=[],
        help="Files or directories to watch (defaults to the project root).",
    )
    watch_p.add_argument(
        "--out-dir",
        default=None,
        help="Directory for rendered .html files (defaults to watch.out_dir).",
    )

    mcp_p = subparsers.add_parser("mcp", help="Model Context Protocol server.")
    mcp_sub = mcp_p.add_subparsers(dest="mcp_command", required=True)
    serve_p = mcp_sub.add_parser("serve", help="Run the MCP server over stdio.")
    _add_common_flags(serve_p)

    return parser


def parse_args(argv: list[str]) -> argparse.Namespace:
    return _build_parser().parse_args(argv)


def _resolve_root_and_config(args: argparse.Namespace) -> tuple[Path | None, Path | None]:
    root = Path(args.root).resolve() if args.root else None
    config_path = Path(args.config).resolve() if args.config else None
    return root, config_path


def _load_config(args: argparse.Namespace) -> tuple[Path, ChatmarkConfig]:
    """Load chatmark.toml if there is one; fall back to defaults otherwise.

    An explicit --config must exist.
    """
    from chatmark.config import CONFIG_FILENAME, default_config, find_project_root, load_config

    root, config_path = _resolve_root_and_config(args)
    if config_path is not None:
        return (root or config_path.parent), load_config(root=root, config_path=config_path)

    if root is None:
        try:
            root = find_project_root(Path.cwd())
        except ChatmarkConfigError:
            return Path.cwd(), default_config()

    if not (root / CONFIG_FILENAME).is_file():
        return root, default_config()
    return root, load_config(root=root)


def _configure_logging(args: argparse.Namespace, cfg: ChatmarkConfig) -> None:
    if getattr(args, "verbose", False):
        level = "DEBUG"
    elif getattr(args, "quiet", False):
        level = "ERROR"
    else:
        level = cfg.logging.level
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


def _print_error(e: BaseException) -> None:
    msg = (str(e) or repr(e)).strip()
    _eprint(f"error: {msg}")


def _emit_json(payload: dict[str, object]) -> None:
    print(json.dumps(payload))


def _fail(args: argparse.Namespace, command: str, e: BaseException, code: int) -> int:
    if getattr(args, "json_output", False):
        _emit_json({"command": command, "ok": False, "error": (str(e) or repr(e)).strip()})
    else:
        _print_error(e)
    return code


def cmd_render(args: argparse.Namespace) -> int:
    from chatmark.detect import looks_like_html
    from chatmark.files import read_source, write_output
    from chatmark.render import render

    try:
        _root, cfg = _load_config(args)
        _configure_logging(args, cfg)

        text = read_source(args.path)
        html = render(text)
        if args.output:
            write_output(Path(args.output), html)

        if args.json_output:
            _emit_json(
                {
                    "command": "render",
                    "ok": True,
                    "is_html": looks_like_html(text),
                    "html": html,
                    "output": args.output,
                }
            )
        elif not args.output:
            print(html)
        return EXIT_OK
    except ChatmarkConfigError as e:
        return _fail(args, "render", e, EXIT_CONFIG)
    except ChatmarkInputError as e:
        return _fail(args, "render", e, EXIT_INPUT)


def cmd_detect(args: argparse.Namespace) -> int:
    from chatmark.detect import looks_like_html
    from chatmark.files import read_source

    try:
        _root, cfg = _load_config(args)
        _configure_logging(args, cfg)

        is_html = looks_like_html(read_source(args.path))
        kind = "html" if is_html else "markdown"
        if args.json_output:
            _emit_json({"command": "detect", "ok": True, "is_html": is_html, "kind": kind})
        else:
            print(kind)
        return EXIT_OK
    except ChatmarkConfigError as e:
        return _fail(args, "detect", e, EXIT_CONFIG)
    except ChatmarkInputError as e:
        return _fail(args, "detect", e, EXIT_INPUT)


def _format_message_html(msg_css: str, label: str, html: str) -> str:
    return (
        f'<div class="{msg_css}">'
        f'<div class="message-role">{escape(label)}</div>'
        f'<div class="message-content">{html}</div>'
        f"</div>"
    )


def cmd_messages(args: argparse.Namespace) -> int:
    from chatmark.files import read_source
    from chatmark.messages import RoleLabels, parse_messages_json, render_messages

    try:
        _root, cfg = _load_config(args)
        _configure_logging(args, cfg)

        records = parse_messages_json(read_source(args.path))
        labels = RoleLabels(user=cfg.messages.user_label, agent=cfg.messages.agent_label)
        rendered = render_messages(records, agent_name=args.agent_name, labels=labels)

        if args.json_output:
            _emit_json(
                {
                    "command": "messages",
                    "ok": True,
                    "messages": [m.to_dict() for m in rendered],
                }
            )
        else:
            for m in rendered:
                print(_format_message_html(m.css_class, m.role_label, m.html))
        return EXIT_OK
    except ChatmarkConfigError as e:
        return _fail(args, "messages", e, EXIT_CONFIG)
    except ChatmarkInputError as e:
        return _fail(args, "messages", e, EXIT_INPUT)


def cmd_watch(args: argparse.Namespace) -> int:
    from chatmark import watcher

    try:
        watcher.check_watchfiles_available()
    except ImportError as e:
        return _fail(args, "watch", e, EXIT_CONFIG)

    try:
        root, cfg = _load_config(args)
    except ChatmarkConfigError as e:
        return _fail(args, "watch", e, EXIT_CONFIG)
    _configure_logging(args, cfg)

    roots = [Path(p).resolve() for p in args.paths] or [root.resolve()]
    missing = [r for r in roots if not r.exists()]
    if missing:
        err = ChatmarkInputError(f"Watch path does not exist: {missing[0]}")
        return _fail(args, "watch", err, EXIT_INPUT)

    if args.out_dir:
        out_dir = Path(args.out_dir).resolve()
    else:
        out_dir = (root / cfg.watch.out_dir).resolve()

    json_mode = bool(args.json_output)

    def on_event(msg: str) -> None:
        if not json_mode:
            _eprint(msg)

    def on_cycle_result(result: WatchCycleResult) -> None:
        if json_mode:
            _emit_json(watcher.format_watch_cycle_json(result))
            return
        for path in result.rendered:
            _eprint(f"[watch] wrote {path}")
        for path, msg in sorted(result.failed.items()):
            _eprint(f"[watch] failed {path}: {msg}")

    def on_error(exc: BaseException) -> None:
        if json_mode:
            _emit_json({"command": "watch", "ok": False, "error": str(exc) or repr(exc)})
        else:
            _print_error(exc)

    if not json_mode:
        _eprint(f"[watch] watching {', '.join(str(r) for r in roots)} -> {out_dir}")

    try:
        asyncio.run(
            watcher.run_watch_loop(
                changes_iter=watcher.make_watchfiles_iter(
                    roots, debounce_ms=cfg.watch.debounce_ms
                ),
                run_cycle=watcher.build_cycle_runner(out_dir),
                on_event=on_event,
                on_cycle_result=on_cycle_result,
                on_error=on_error,
                roots=roots,
                suffixes=cfg.watch.suffixes,
                out_dir=out_dir,
            )
        )
    except KeyboardInterrupt:
        pass
    return EXIT_OK


def cmd_mcp(args: argparse.Namespace) -> int:
    try:
        _root, cfg = _load_config(args)
    except ChatmarkConfigError as e:
        _print_error(e)
        return EXIT_CONFIG
    _configure_logging(args, cfg)

    if not cfg.mcp.enabled:
        _eprint("error: the MCP server is disabled in chatmark.toml ([mcp] enabled = false).")
        return EXIT_CONFIG

    from chatmark.messages import RoleLabels

    try:
        from chatmark.mcp_server import run_server

        labels = RoleLabels(user=cfg.messages.user_label, agent=cfg.messages.agent_label)
        run_server(labels=labels)
    except ImportError:
        _eprint(
            "error: fastmcp is required for the MCP server. "
            "Install it with: pip install chatmark[mcp]"
        )
        return EXIT_CONFIG
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    try:
        args = parse_args(list(sys.argv[1:] if argv is None else argv))
    except SystemExit as e:
        # argparse uses SystemExit for --help/--version and parse errors.
        code = e.code
        return int(code) if isinstance(code, int) else EXIT_CONFIG

    if args.command == "render":
        return cmd_render(args)
    if args.command == "detect":
        return cmd_detect(args)
    if args.command == "messages":
        return cmd_messages(args)
    if args.command == "watch":
        return cmd_watch(args)
    if args.command == "mcp":
        return cmd_mcp(args)

    return EXIT_CONFIG


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
