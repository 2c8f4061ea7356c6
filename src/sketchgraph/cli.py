"""Command-line interface for one-shot and live sketchgraph rendering."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import traceback
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .config import LAYOUT_ENGINES, RenderConfig
from .errors import LayoutError, LayoutPreconditionError, MeasurementError, ParseError
from .pipeline import Pipeline
from .resources import load_example, load_grammar
from .scheduler import RenderScheduler
from .surface import FileSurface

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.25


@dataclass
class CliError(Exception):
    code: str
    message: str
    hint: Optional[str] = None
    exit_code: int = 1
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    retryable: bool = True


class UsageError(Exception):
    pass


class FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # pragma: no cover - argparse callback
        raise UsageError(message)


def _add_render_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--sketchiness", type=float, help="Stroke roughness (0 draws exact lines)")
    seed = parser.add_mutually_exclusive_group()
    seed.add_argument("--seed", type=int, help="Seed for stroke jitter")
    seed.add_argument("--no-seed", action="store_true", help="Use fresh stroke jitter on every render")
    parser.add_argument("--engine", choices=list(LAYOUT_ENGINES), help="Layout engine")
    parser.add_argument("--font-family", help="Label font family")
    parser.add_argument("--font-path", help="Explicit label font file")
    parser.add_argument("--font-size", type=float, help="Label font size in pixels")
    parser.add_argument("--padding", type=float, help="Padding around each label")
    parser.add_argument("--margin", type=float, help="Margin around the whole diagram")


def _build_parser() -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog="sketchgraph",
        description="Render digraph descriptions as hand-drawn SVG diagrams.",
    )
    parser.add_argument("--error-format", choices=["text", "json"], default="text")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")

    subparsers = parser.add_subparsers(dest="command")

    render_parser = subparsers.add_parser("render", help="Render a description to SVG")
    render_parser.add_argument("input", nargs="?", help="Input description file")
    render_parser.add_argument("--text", help="Raw description source")
    render_parser.add_argument("--stdout", action="store_true", help="Write SVG to stdout")
    render_parser.add_argument("-o", "--output", help="Output .svg path")
    _add_render_options(render_parser)

    watch_parser = subparsers.add_parser("watch", help="Re-render an SVG whenever the description changes")
    watch_parser.add_argument("input", help="Description file to watch")
    watch_parser.add_argument("-o", "--output", help="Output .svg path")
    watch_parser.add_argument("--delay", type=float, help="Quiet interval before rendering (seconds)")
    watch_parser.add_argument(
        "--poll", type=float, default=DEFAULT_POLL_INTERVAL, help="File polling interval (seconds)"
    )
    watch_parser.add_argument("--once", action="store_true", help="Render the current contents and exit")
    _add_render_options(watch_parser)

    subparsers.add_parser("grammar", help="Print the description grammar reference")
    subparsers.add_parser("example", help="Print an example description")

    return parser


def _configure_logging(*, verbose: bool, debug: bool) -> None:
    level = logging.DEBUG if (verbose or debug) else logging.WARNING
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    package_logger = logging.getLogger("sketchgraph")
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(level)
    package_logger.propagate = False


def _config_from_args(args: argparse.Namespace) -> RenderConfig:
    try:
        config = RenderConfig.from_env().with_overrides(
            sketchiness=args.sketchiness,
            seed=args.seed,
            engine=args.engine,
            font_family=args.font_family,
            font_path=args.font_path,
            font_size=args.font_size,
            padding=args.padding,
            margin=args.margin,
            delay=getattr(args, "delay", None),
        )
        if args.no_seed:
            config = replace(config, seed=None)
    except ValueError as exc:
        raise CliError("E_ARGS", str(exc), hint="Check render options and SKETCHGRAPH_* variables.", exit_code=2)
    return config


def _read_input(path: Optional[str], text: Optional[str]) -> Tuple[str, str, Optional[Path]]:
    if path and text is not None:
        raise CliError(
            "E_ARGS",
            "--text cannot be combined with file input",
            hint="Use either FILE or --text.",
            exit_code=2,
        )

    if text is not None:
        return text, "<text>", None

    if path:
        input_path = Path(path)
        if not input_path.exists():
            raise CliError(
                "E_IO_READ",
                f"input file not found: {input_path}",
                exit_code=4,
                file=str(input_path),
            )
        try:
            return input_path.read_text(encoding="utf-8"), str(input_path), input_path
        except OSError as exc:
            raise CliError(
                "E_IO_READ",
                f"failed to read input file: {input_path}",
                hint=str(exc),
                exit_code=4,
                file=str(input_path),
            )

    if sys.stdin.isatty():
        raise CliError(
            "E_ARGS",
            "no input provided",
            hint="Use a subcommand with FILE, --text, or pipe stdin.",
            exit_code=2,
        )

    data = sys.stdin.read()
    if not data.strip():
        raise CliError(
            "E_ARGS",
            "stdin was empty",
            hint="Pipe a digraph description into stdin.",
            exit_code=2,
        )
    return data, "<stdin>", None


def _write_text(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise CliError(
            "E_IO_WRITE",
            f"failed to write output file: {path}",
            hint=str(exc),
            exit_code=4,
            file=str(path),
        )


def _error_from_exception(exc: BaseException, *, file: Optional[str] = None) -> CliError:
    if isinstance(exc, CliError):
        return exc
    if isinstance(exc, ParseError):
        return CliError(
            "E_PARSE",
            str(exc),
            hint='Expected digraph { A [label="..."]; A -> B; }; see `sketchgraph grammar`.',
            exit_code=2,
            file=file,
            line=exc.line,
            column=exc.column,
        )
    if isinstance(exc, MeasurementError):
        return CliError(
            "E_MEASURE",
            str(exc),
            hint="Check --font-family/--font-path and that Pillow can load fonts.",
            exit_code=3,
            file=file,
        )
    if isinstance(exc, LayoutError):
        return CliError(
            "E_LAYOUT",
            str(exc),
            hint="Retry with --engine builtin.",
            exit_code=3,
            file=file,
        )
    if isinstance(exc, LayoutPreconditionError):
        return CliError(
            "E_GEOMETRY",
            str(exc),
            hint="Re-run with --debug and report the traceback.",
            exit_code=1,
            file=file,
            retryable=False,
        )
    if isinstance(exc, OSError):
        return CliError(
            "E_IO_WRITE",
            str(exc),
            exit_code=4,
            file=file,
        )
    return CliError(
        "E_INTERNAL",
        str(exc) or exc.__class__.__name__,
        hint="Re-run with --debug to see traceback.",
        exit_code=1,
        retryable=False,
    )


def _emit_error(err: CliError, *, error_format: str) -> None:
    if error_format == "json":
        payload = {
            "ok": False,
            "code": err.code,
            "message": err.message,
            "file": err.file,
            "line": err.line,
            "column": err.column,
            "hint": err.hint,
            "retryable": err.retryable,
        }
        sys.stderr.write(json.dumps(payload) + "\n")
        return

    sys.stderr.write(f"error[{err.code}]: {err.message}\n")
    if err.hint:
        sys.stderr.write(f"hint: {err.hint}\n")


def _handle_render(args: argparse.Namespace) -> int:
    if args.stdout and args.output:
        raise CliError(
            "E_ARGS",
            "--stdout and --output are mutually exclusive",
            hint="Choose either --stdout or --output.",
            exit_code=2,
        )
    config = _config_from_args(args)
    source, source_name, source_path = _read_input(args.input, args.text)
    try:
        scene = Pipeline(config)(source)
    except (ParseError, MeasurementError, LayoutError) as exc:
        raise _error_from_exception(exc, file=source_name) from exc
    svg_text = scene.to_svg()

    if args.stdout or (source_path is None and not args.output):
        sys.stdout.write(svg_text)
        if not svg_text.endswith("\n"):
            sys.stdout.write("\n")
        return 0

    output_path = Path(args.output) if args.output else source_path.with_suffix(".svg")
    _write_text(output_path, svg_text + "\n")
    print(f"Wrote {output_path}")
    return 0


def _handle_watch(args: argparse.Namespace) -> int:
    if args.poll <= 0:
        raise CliError("E_ARGS", "--poll must be > 0", hint="Use an interval like 0.25.", exit_code=2)
    config = _config_from_args(args)
    input_path = Path(args.input)
    if not input_path.exists():
        raise CliError("E_IO_READ", f"input file not found: {input_path}", exit_code=4, file=str(input_path))
    output_path = Path(args.output) if args.output else input_path.with_suffix(".svg")
    error_format = args.error_format
    failures: List[CliError] = []

    def _on_error(exc: Exception) -> None:
        err = _error_from_exception(exc, file=str(input_path))
        failures.append(err)
        _emit_error(err, error_format=error_format)

    scheduler = RenderScheduler(Pipeline(config), delay=config.delay, on_error=_on_error)
    surface = FileSurface(output_path)
    try:
        asyncio.run(_watch(input_path, surface, scheduler, poll=args.poll, once=args.once))
    except KeyboardInterrupt:
        scheduler.cancel()
        return 0
    if args.once:
        if failures:
            return failures[-1].exit_code
        if surface.generation == 0:
            raise CliError("E_IO_READ", f"failed to read input file: {input_path}", exit_code=4, file=str(input_path))
        print(f"Wrote {output_path}")
    return 0


async def _watch(
    input_path: Path,
    surface: FileSurface,
    scheduler: RenderScheduler,
    *,
    poll: float,
    once: bool,
) -> None:
    last_signature: Optional[Tuple[int, int]] = None
    while True:
        try:
            stat = input_path.stat()
            signature = (stat.st_mtime_ns, stat.st_size)
            if signature != last_signature:
                last_signature = signature
                scheduler.schedule(input_path.read_text(encoding="utf-8"), surface)
        except OSError as exc:
            logger.warning("cannot read %s: %s", input_path, exc)
        if once:
            while not scheduler.idle:
                await asyncio.sleep(min(poll, scheduler.delay) or 0.01)
            return
        await asyncio.sleep(poll)


def main(argv: Optional[Iterable[str]] = None) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()

    if not raw_argv:
        err = CliError(
            "E_ARGS",
            "missing subcommand",
            hint="Use one of: render, watch, grammar, example.",
            exit_code=2,
        )
        _emit_error(err, error_format="text")
        return err.exit_code

    debug_enabled = "--debug" in raw_argv or os.getenv("SKETCHGRAPH_DEBUG") == "1"
    error_format = "text"
    if "--error-format" in raw_argv:
        idx = raw_argv.index("--error-format")
        if idx + 1 < len(raw_argv):
            error_format = raw_argv[idx + 1]

    try:
        args = parser.parse_args(raw_argv)
        error_format = args.error_format
        _configure_logging(verbose=args.verbose, debug=debug_enabled)

        if args.command == "render":
            return _handle_render(args)
        if args.command == "watch":
            return _handle_watch(args)
        if args.command == "grammar":
            print(load_grammar())
            return 0
        if args.command == "example":
            print(load_example(), end="")
            return 0

        raise CliError(
            "E_ARGS",
            "missing subcommand",
            hint="Use one of: render, watch, grammar, example.",
            exit_code=2,
        )
    except UsageError as exc:
        err = CliError(
            "E_ARGS",
            str(exc),
            hint="Use subcommands: render, watch, grammar, example.",
            exit_code=2,
        )
        _emit_error(err, error_format=error_format)
        return err.exit_code
    except Exception as exc:  # pragma: no cover - exercised in integration tests
        err = _error_from_exception(exc)
        _emit_error(err, error_format=error_format)
        if debug_enabled:
            traceback.print_exc(file=sys.stderr)
        return err.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
