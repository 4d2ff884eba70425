from __future__ import annotations

import io
import json
import sys
from pathlib import Path

import pytest

import chatmark.cli


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    """A working directory with no chatmark.toml (defaults apply)."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Parsing and dispatch
# ---------------------------------------------------------------------------


def test_parse_render_defaults() -> None:
    ns = chatmark.cli.parse_args(["render"])
    assert ns.command == "render"
    assert ns.path == "-"
    assert ns.output is None
    assert ns.json_output is False
    assert ns.root is None
    assert ns.config is None
    assert ns.verbose is False
    assert ns.quiet is False


def test_parse_messages_flags() -> None:
    ns = chatmark.cli.parse_args(["messages", "conv.json", "--agent-name", "Bot", "--json"])
    assert ns.path == "conv.json"
    assert ns.agent_name == "Bot"
    assert ns.json_output is True


def test_parse_messages_defaults_to_stdin() -> None:
    ns = chatmark.cli.parse_args(["messages"])
    assert ns.path == "-"
    assert ns.agent_name is None


def test_parse_watch_defaults() -> None:
    ns = chatmark.cli.parse_args(["watch"])
    assert ns.command == "watch"
    assert ns.paths == []
    assert ns.out_dir is None
    assert ns.json_output is False


def test_verbose_and_quiet_are_exclusive() -> None:
    assert chatmark.cli.main(["render", "-v", "-q"]) == 2


@pytest.mark.parametrize("command", ["render", "detect", "messages", "watch"])
def test_main_dispatches(monkeypatch, command: str) -> None:
    monkeypatch.setattr(chatmark.cli, f"cmd_{command}", lambda args: 0)
    assert chatmark.cli.main([command]) == 0


def test_main_dispatches_mcp(monkeypatch) -> None:
    monkeypatch.setattr(chatmark.cli, "cmd_mcp", lambda args: 0)
    assert chatmark.cli.main(["mcp", "serve"]) == 0


# ---------------------------------------------------------------------------
# render / detect
# ---------------------------------------------------------------------------


def test_render_file_to_stdout(project: Path, capsys) -> None:
    src = _write(project / "msg.md", "# Hi\n- a\n- b")
    rc = chatmark.cli.main(["render", str(src)])
    assert rc == chatmark.cli.EXIT_OK
    assert capsys.readouterr().out == "<h1>Hi</h1><ul><li>a</li><li>b</li></ul>\n"


def test_render_stdin(project: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(sys, "stdin", io.StringIO("*hi*"))
    assert chatmark.cli.main(["render"]) == 0
    assert capsys.readouterr().out == "<p><em>hi</em></p>\n"


def test_render_stdin_invalid_utf8(project: Path, monkeypatch, capsys) -> None:
    monkeypatch.setattr(
        sys, "stdin", io.TextIOWrapper(io.BytesIO(b"\xff\xfe bad"), encoding="utf-8")
    )
    assert chatmark.cli.main(["render", "-"]) == chatmark.cli.EXIT_INPUT
    assert "error: Input is not valid UTF-8: <stdin>" in capsys.readouterr().err


def test_render_json(project: Path, capsys) -> None:
    src = _write(project / "msg.html", "<p>already</p>")
    assert chatmark.cli.main(["render", str(src), "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data == {
        "command": "render",
        "ok": True,
        "is_html": True,
        "html": "<p>already</p>",
        "output": None,
    }


def test_render_output_file(project: Path, capsys) -> None:
    src = _write(project / "msg.md", "**b**")
    out = project / "out" / "msg.html"
    assert chatmark.cli.main(["render", str(src), "-o", str(out)]) == 0
    assert out.read_text(encoding="utf-8") == "<p><strong>b</strong></p>"
    assert capsys.readouterr().out == ""


def test_render_missing_input(project: Path, capsys) -> None:
    rc = chatmark.cli.main(["render", str(project / "nope.md")])
    assert rc == chatmark.cli.EXIT_INPUT
    assert "error: Input file not found" in capsys.readouterr().err


def test_render_missing_input_json(project: Path, capsys) -> None:
    rc = chatmark.cli.main(["render", str(project / "nope.md"), "--json"])
    assert rc == chatmark.cli.EXIT_INPUT
    data = json.loads(capsys.readouterr().out)
    assert data["command"] == "render"
    assert data["ok"] is False
    assert "not found" in data["error"]


def test_render_bad_explicit_config(project: Path, capsys) -> None:
    src = _write(project / "msg.md", "x")
    rc = chatmark.cli.main(["render", str(src), "--config", str(project / "missing.toml")])
    assert rc == chatmark.cli.EXIT_CONFIG
    assert "Missing chatmark.toml" in capsys.readouterr().err


def test_render_invalid_project_config(project: Path, capsys) -> None:
    _write(project / "chatmark.toml", "version = 7\n")
    src = _write(project / "msg.md", "x")
    assert chatmark.cli.main(["render", str(src)]) == chatmark.cli.EXIT_CONFIG
    assert "Unsupported config version" in capsys.readouterr().err


@pytest.mark.parametrize(("text", "kind"), [("<p>x</p>", "html"), ("**x**", "markdown")])
def test_detect(project: Path, capsys, text: str, kind: str) -> None:
    src = _write(project / "msg.txt", text)
    assert chatmark.cli.main(["detect", str(src)]) == 0
    assert capsys.readouterr().out.strip() == kind


def test_detect_json(project: Path, capsys) -> None:
    src = _write(project / "msg.txt", "<br/>")
    assert chatmark.cli.main(["detect", str(src), "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data == {"command": "detect", "ok": True, "is_html": True, "kind": "html"}


# ---------------------------------------------------------------------------
# messages
# ---------------------------------------------------------------------------

CONVERSATION = json.dumps(
    [
        {"role": "USER", "text": "What next?"},
        {"role": "AGENT", "text": "1. Call 2. Email"},
    ]
)


def test_messages_html(project: Path, capsys) -> None:
    src = _write(project / "conv.json", CONVERSATION)
    assert chatmark.cli.main(["messages", str(src), "--agent-name", "Astro & Co"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        '<div class="message user-message"><div class="message-role">You</div>'
        '<div class="message-content"><p>What next?</p></div></div>',
        '<div class="message agent-message"><div class="message-role">Astro &amp; Co</div>'
        '<div class="message-content"><ol><li>Call</li><li>Email</li></ol></div></div>',
    ]


def test_messages_json_uses_configured_labels(project: Path, capsys) -> None:
    _write(
        project / "chatmark.toml",
        'version = 1\n[messages]\nuser_label = "Customer"\nagent_label = "Assistant"\n',
    )
    src = _write(project / "conv.json", CONVERSATION)
    assert chatmark.cli.main(["messages", str(src), "--json"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["ok"] is True
    assert [m["role_label"] for m in data["messages"]] == ["Customer", "Assistant"]
    assert data["messages"][1]["html"] == "<ol><li>Call</li><li>Email</li></ol>"


def test_messages_invalid_json(project: Path, capsys) -> None:
    src = _write(project / "conv.json", "{broken")
    assert chatmark.cli.main(["messages", str(src), "--json"]) == chatmark.cli.EXIT_INPUT
    data = json.loads(capsys.readouterr().out)
    assert data["command"] == "messages"
    assert data["ok"] is False


# ---------------------------------------------------------------------------
# watch / mcp
# ---------------------------------------------------------------------------


def _raise_import_error() -> None:
    raise ImportError(
        "watchfiles is required for watch mode. Install it with: pip install chatmark[watch]"
    )


def test_cmd_watch_missing_watchfiles(project: Path, monkeypatch) -> None:
    import chatmark.watcher

    monkeypatch.setattr(chatmark.watcher, "check_watchfiles_available", _raise_import_error)

    ns = chatmark.cli.parse_args(["watch"])
    assert chatmark.cli.cmd_watch(ns) == chatmark.cli.EXIT_CONFIG


def test_cmd_watch_missing_watchfiles_json(project: Path, monkeypatch, capsys) -> None:
    import chatmark.watcher

    monkeypatch.setattr(chatmark.watcher, "check_watchfiles_available", _raise_import_error)

    ns = chatmark.cli.parse_args(["watch", "--json"])
    assert chatmark.cli.cmd_watch(ns) == chatmark.cli.EXIT_CONFIG
    data = json.loads(capsys.readouterr().out)
    assert data["command"] == "watch"
    assert data["ok"] is False
    assert "watchfiles" in data["error"]


def test_cmd_watch_missing_path(project: Path, monkeypatch) -> None:
    import chatmark.watcher

    monkeypatch.setattr(chatmark.watcher, "check_watchfiles_available", lambda: None)

    ns = chatmark.cli.parse_args(["watch", str(project / "missing")])
    assert chatmark.cli.cmd_watch(ns) == chatmark.cli.EXIT_INPUT


def test_cmd_watch_runs_loop_with_config(project: Path, monkeypatch) -> None:
    import chatmark.watcher

    _write(project / "chatmark.toml", 'version = 1\n[watch]\nout_dir = "site"\ndebounce_ms = 5\n')
    seen: dict[str, object] = {}

    async def fake_loop(**kwargs) -> None:
        seen.update(kwargs)

    def fake_iter(paths, *, debounce_ms):
        seen["watch_paths"] = paths
        seen["debounce_ms"] = debounce_ms
        return None

    monkeypatch.setattr(chatmark.watcher, "check_watchfiles_available", lambda: None)
    monkeypatch.setattr(chatmark.watcher, "make_watchfiles_iter", fake_iter)
    monkeypatch.setattr(chatmark.watcher, "run_watch_loop", fake_loop)

    ns = chatmark.cli.parse_args(["watch"])
    assert chatmark.cli.cmd_watch(ns) == chatmark.cli.EXIT_OK
    assert seen["watch_paths"] == [project.resolve()]
    assert seen["debounce_ms"] == 5
    assert seen["out_dir"] == (project / "site").resolve()
    assert seen["suffixes"] == [".md", ".markdown", ".txt"]


def test_cmd_mcp_disabled(project: Path, capsys) -> None:
    _write(project / "chatmark.toml", "version = 1\n[mcp]\nenabled = false\n")
    assert chatmark.cli.main(["mcp", "serve"]) == chatmark.cli.EXIT_CONFIG
    assert "disabled" in capsys.readouterr().err


def test_cmd_mcp_missing_fastmcp(project: Path, monkeypatch, capsys) -> None:
    monkeypatch.setitem(sys.modules, "fastmcp", None)
    assert chatmark.cli.main(["mcp", "serve"]) == chatmark.cli.EXIT_CONFIG
    assert "pip install chatmark[mcp]" in capsys.readouterr().err
