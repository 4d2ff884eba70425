"""Watch mode: re-render message sources when they change."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from chatmark.errors import ChatmarkInputError

logger = logging.getLogger("chatmark.watch")


@dataclass(frozen=True, slots=True)
class WatchEvent:
    """A batch of relevant file changes."""

    changed_paths: frozenset[Path]
    timestamp: float


@dataclass(frozen=True, slots=True)
class WatchCycleResult:
    """Result of a single watch render cycle."""

    rendered: tuple[Path, ...]
    duration_s: float
    changed_paths: frozenset[Path]
    failed: dict[Path, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def check_watchfiles_available() -> None:
    """Raise ImportError with a helpful message if watchfiles is not installed."""
    import importlib

    try:
        importlib.import_module("watchfiles")
    except ImportError:
        raise ImportError(
            "watchfiles is required for watch mode. Install it with: pip install chatmark[watch]"
        ) from None


def filter_source_files(
    changed_paths: frozenset[Path],
    *,
    roots: list[Path],
    suffixes: list[str],
    out_dir: Path | None = None,
) -> frozenset[Path]:
    """Filter changed paths to source files under `roots`, excluding `out_dir`."""
    kept: set[Path] = set()
    for p in changed_paths:
        if p.suffix not in suffixes:
            continue
        if out_dir is not None and p.is_relative_to(out_dir):
            continue
        if any(p.is_relative_to(r) for r in roots):
            kept.add(p)
    return frozenset(kept)


async def run_watch_loop(
    *,
    changes_iter: AsyncIterator[set[tuple[Any, str]]],
    run_cycle: Callable[[WatchEvent], WatchCycleResult],
    on_event: Callable[[str], None],
    on_cycle_result: Callable[[WatchCycleResult], None],
    on_error: Callable[[BaseException], None],
    roots: list[Path],
    suffixes: list[str],
    out_dir: Path | None = None,
) -> None:
    """Main watch loop. Consumes changes_iter, filters, and calls run_cycle."""
    async for raw_changes in changes_iter:
        paths = frozenset(Path(p) for _, p in raw_changes)
        relevant = filter_source_files(paths, roots=roots, suffixes=suffixes, out_dir=out_dir)
        if not relevant:
            continue

        event = WatchEvent(changed_paths=relevant, timestamp=time.monotonic())

        names = ", ".join(str(p) for p in sorted(relevant))
        on_event(f"[watch] change detected: {names}")
        on_event("[watch] rendering...")

        try:
            result = run_cycle(event)
        except Exception as exc:
            on_error(exc)
            continue

        on_event(f"[watch] done ({result.duration_s:.1f}s)")
        on_cycle_result(result)


def format_watch_cycle_json(result: WatchCycleResult) -> dict[str, object]:
    """Format a cycle result as a JSON-serializable dict."""
    return {
        "command": "watch",
        "ok": result.ok,
        "rendered": [str(p) for p in result.rendered],
        "failed": {str(p): msg for p, msg in sorted(result.failed.items())},
        "duration_s": round(result.duration_s, 2),
        "changed_paths": sorted(str(p) for p in result.changed_paths),
    }


def build_cycle_runner(out_dir: Path) -> Callable[[WatchEvent], WatchCycleResult]:
    """Create a cycle runner that renders every changed file into `out_dir`."""
    from chatmark.files import render_file

    def runner(event: WatchEvent) -> WatchCycleResult:
        t0 = time.monotonic()
        rendered: list[Path] = []
        failed: dict[Path, str] = {}
        for src in sorted(event.changed_paths):
            if not src.is_file():
                # Deleted or renamed away; nothing to render.
                continue
            try:
                rendered.append(render_file(src, out_dir))
            except ChatmarkInputError as e:
                logger.warning("Failed rendering %s: %s", src, e)
                failed[src] = str(e)

        return WatchCycleResult(
            rendered=tuple(rendered),
            duration_s=time.monotonic() - t0,
            changed_paths=event.changed_paths,
            failed=failed,
        )

    return runner


def make_watchfiles_iter(
    watch_paths: list[Path],
    *,
    debounce_ms: int = 200,
) -> AsyncIterator[set[tuple[Any, str]]]:
    """Create an async iterator using watchfiles.awatch()."""
    import watchfiles  # type: ignore[import-untyped]

    return watchfiles.awatch(*watch_paths, debounce=debounce_ms)
