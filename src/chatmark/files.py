from __future__ import annotations

import sys
from pathlib import Path

from chatmark.errors import ChatmarkInputError
from chatmark.render import render

STDIN_PATH = "-"


def read_source(path: str | Path) -> str:
    """Read UTF-8 message text from `path`, or from stdin when `path` is "-"."""

    if str(path) == STDIN_PATH:
        try:
            return sys.stdin.read()
        except UnicodeDecodeError as e:
            raise ChatmarkInputError("Input is not valid UTF-8: <stdin>") from e

    p = Path(path)
    try:
        return p.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ChatmarkInputError(f"Input file not found: {p}") from e
    except UnicodeDecodeError as e:
        raise ChatmarkInputError(f"Input is not valid UTF-8: {p}") from e
    except OSError as e:
        raise ChatmarkInputError(f"Failed reading input file: {p}") from e


def output_path_for(source: Path, out_dir: Path) -> Path:
    return out_dir / f"{source.stem}.html"


def write_output(path: Path, html: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")
    except OSError as e:
        raise ChatmarkInputError(f"Failed writing output file: {path}") from e


def render_file(source: Path, out_dir: Path) -> Path:
    """Render `source` into `<out_dir>/<stem>.html` and return the output path."""

    dest = output_path_for(source, out_dir)
    write_output(dest, render(read_source(source)))
    return dest
