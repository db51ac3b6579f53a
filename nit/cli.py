from __future__ import annotations

"""
Command-line entry point.

The config file is ~/.config/nix-nit/config.toml:

    [[template]]
    name = "test"                  # optional
    uri = "github:NixOS/templates"
    templates = ["default"]        # optional; all templates when absent

Line mode: every line you type is the new query; ``:N`` initializes the
N-th row, ``:`` the top one; EOF (Ctrl-D) quits without doing anything.
"""

import argparse
import sys
from typing import List, Optional, Sequence, TextIO

from loguru import logger

from . import config
from .errors import ActionFailed, CatalogUnavailable, CommitInProgress, MatchConfigInvalid, StoreWriteFailed
from .pipeline_types import RankedView, Span
from .session import PickerSession

PROMPT = "> "


def highlight(text: str, spans: Sequence[Span], open_mark: str = "[", close_mark: str = "]") -> str:
    out: List[str] = []
    cursor = 0
    for start, length in spans:
        out.append(text[cursor:start])
        out.append(f"{open_mark}{text[start:start + length]}{close_mark}")
        cursor = start + length
    out.append(text[cursor:])
    return "".join(out)


def render(view: RankedView, rows: int) -> str:
    lines = []
    for n, (display, spans) in enumerate(view.rows()[:rows], start=1):
        marker = ">" if n == 1 else " "
        lines.append(f"{marker} {n:>2} {highlight(display, spans)}")
    lines.append(f"  {len(view)}/{len(view.catalog)}")
    return "\n".join(lines)


def parse_commit(line: str) -> Optional[int]:
    """``:N`` -> N, ``:`` / ``::`` -> 1, anything else -> None (a query)."""
    if not line.startswith(":"):
        return None
    arg = line[1:].strip()
    if arg in ("", ":"):
        return 1
    try:
        return int(arg)
    except ValueError:
        return None


def run_interactive(
    session: PickerSession,
    rows: int = config.INLINE_ROWS,
    stdin: TextIO = sys.stdin,
    stdout: TextIO = sys.stdout,
) -> int:
    view = session.scheduler.rank("")
    print(render(view, rows), file=stdout)
    print(PROMPT, end="", file=stdout, flush=True)

    for raw in stdin:
        line = raw.rstrip("\n")
        pos = parse_commit(line)
        if pos is None:
            future = session.scheduler.submit(line)
            delivered = future.result()
            view = delivered if delivered is not None else session.scheduler.latest_view
            print(render(view, rows), file=stdout)
            print(PROMPT, end="", file=stdout, flush=True)
            continue

        choices = view.items()
        if not 1 <= pos <= len(choices):
            print(f"no row {pos}", file=stdout)
            print(PROMPT, end="", file=stdout, flush=True)
            continue

        item = choices[pos - 1]
        try:
            session.controller.commit(item)
        except (ActionFailed, CommitInProgress) as e:
            print(f"error: {e}", file=stdout)
            print(PROMPT, end="", file=stdout, flush=True)
            continue
        except StoreWriteFailed as e:
            print(f"initialized {item.display}, but its frecency was not saved: {e}", file=stdout)
            return 1
        print(f"initialized {item.display}", file=stdout)
        return 0

    print(file=stdout)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="nit", description="Pick a Nix flake template and initialize it.")
    p.add_argument(
        "-r", "--re-cache",
        action="store_true",
        help="Clear and re-collect the cache (needed after changing the config)",
    )
    view = p.add_mutually_exclusive_group()
    view.add_argument("-f", "--fullscreen", action="store_true", help="Show as many rows as fit a full screen")
    view.add_argument(
        "-i", "--inline",
        type=int,
        default=config.INLINE_ROWS,
        help="How many rows to display when not fullscreen",
    )
    p.add_argument("--serve", action="store_true", help="Serve the picker over HTTP instead of the terminal")
    p.add_argument("--port", type=int, default=config.API_PORT)
    p.add_argument("--log-level", default="WARNING")
    p.add_argument("--case", choices=[c.value for c in config.CaseMatching], default=None)
    p.add_argument("--normalization", choices=[n.value for n in config.Normalization], default=None)
    p.add_argument("--half-life-days", type=float, default=None)
    p.add_argument("--bonus", type=float, default=None)
    p.add_argument("--batch-size", type=int, default=None)
    return p


def _config_overrides(args: argparse.Namespace) -> dict:
    return {
        "case_matching": args.case,
        "normalization": args.normalization,
        "half_life_secs": args.half_life_days * config.SECS_PER_DAY if args.half_life_days is not None else None,
        "recency_bonus": args.bonus,
        "batch_size": args.batch_size,
    }


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config.setup_logging(args.log_level)

    try:
        cfg = config.load_picker_config(**_config_overrides(args))
    except MatchConfigInvalid as e:
        logger.error("{}", e)
        return 2

    try:
        session = PickerSession.from_config(cfg, re_cache=args.re_cache)
    except CatalogUnavailable as e:
        logger.error("{}", e)
        return 1

    with session:
        if args.serve:
            import uvicorn

            from . import api

            api.attach_session(session)
            uvicorn.run(api.app, host=config.API_HOST, port=args.port)
            return 0
        rows = config.FULLSCREEN_ROWS if args.fullscreen else args.inline
        return run_interactive(session, rows=rows)


if __name__ == "__main__":
    sys.exit(main())
