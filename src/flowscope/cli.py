"""Command-line interface for flowscope parse/render/query workflows."""
from __future__ import annotations

import argparse
import json
import logging
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from . import export
from .config import LayoutConfig, ViewConfig, debug_enabled
from .layout import layout as compute_layout
from .model import Graph
from .parser import parse
from .query import classify, suggest_queries, summarize
from .render import Surface, render
from .resources import load_cheatsheet
from .viewstate import Annotation, ViewState

COMMANDS = "parse, render, query, suggest, stats, convert, cheatsheet"


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


def _add_input_args(sub: argparse.ArgumentParser) -> None:
    sub.add_argument("input", nargs="?", help="Input DSL file, or analyzer JSON with --graph-json")
    sub.add_argument("--text", help="Raw DSL source")
    sub.add_argument(
        "--graph-json",
        action="store_true",
        help="Treat input as an analyzer graph payload (implied for .json files)",
    )
    sub.add_argument("--seed", type=int, help="Seed for placeholder complexity/importance")


def _build_parser() -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog="flowscope",
        description="Parse flowchart DSL, lay it out, query it and render it to PNG.",
    )
    parser.add_argument("--error-format", choices=["text", "json"], default="text")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")

    parse_parser = subparsers.add_parser("parse", help="Parse DSL and print the graph as JSON")
    _add_input_args(parse_parser)
    parse_parser.add_argument("--layout", action="store_true", help="Include layer positions")
    parse_parser.add_argument("--width", type=float, help="Canvas width used for --layout")

    render_parser = subparsers.add_parser("render", help="Render a diagram to PNG")
    _add_input_args(render_parser)
    render_parser.add_argument("--stdout", action="store_true", help="Write PNG bytes to stdout")
    render_parser.add_argument("--data-url", action="store_true", help="Print a base64 data URL")
    render_parser.add_argument("-o", "--output", help="Output .png path")
    render_parser.add_argument("--width", type=int, help="Canvas width in graph units")
    render_parser.add_argument("--height", type=int, help="Canvas height in graph units")
    render_parser.add_argument("--scale", type=float, default=1.0)
    render_parser.add_argument("--query", help="Apply a query before rendering")
    render_parser.add_argument("--select", help="Select a node id and highlight its neighbors")
    render_parser.add_argument("--type", dest="type_filter", help="Only draw nodes of this type")
    render_parser.add_argument(
        "--view-mode",
        choices=[mode.value for mode in Annotation],
        default=Annotation.ARCHITECTURE.value,
    )

    query_parser = subparsers.add_parser("query", help="Classify a query against a diagram")
    query_parser.add_argument("query", help="Free-text query such as 'show the database'")
    _add_input_args(query_parser)

    suggest_parser = subparsers.add_parser("suggest", help="Print suggested queries")
    _add_input_args(suggest_parser)

    stats_parser = subparsers.add_parser("stats", help="Print an insight summary as JSON")
    _add_input_args(stats_parser)

    convert_parser = subparsers.add_parser("convert", help="Convert between DSL and graph JSON")
    _add_input_args(convert_parser)
    convert_parser.add_argument("--to", choices=["mermaid", "json"], default="mermaid")
    convert_parser.add_argument("-o", "--output", help="Output path (default stdout)")

    subparsers.add_parser("cheatsheet", help="Print the DSL quick reference")

    return parser


def _read_input(path: Optional[str], text: Optional[str]) -> tuple[str, str, Optional[Path]]:
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
                exit_code=2,
                file=str(input_path),
            )
        try:
            return input_path.read_text(encoding="utf-8"), str(input_path), input_path
        except OSError as exc:
            raise CliError(
                "E_IO_READ",
                f"failed to read input file: {input_path}",
                hint=str(exc),
                exit_code=2,
                file=str(input_path),
            )

    if sys.stdin.isatty():
        raise CliError(
            "E_ARGS",
            "no input provided",
            hint="Use a subcommand with FILE, --text, or pipe stdin.",
            exit_code=2,
        )
    return sys.stdin.read(), "<stdin>", None


def _load_graph(args: argparse.Namespace) -> tuple[Graph, Optional[Path]]:
    source, source_name, source_path = _read_input(args.input, args.text)
    as_json = args.graph_json or (source_path is not None and source_path.suffix.lower() == ".json")
    if not as_json:
        return parse(source, seed=args.seed), source_path
    try:
        payload = json.loads(source)
    except json.JSONDecodeError as exc:
        raise CliError(
            "E_GRAPH_JSON",
            f"invalid graph JSON: {exc.msg}",
            hint="Provide an object with 'nodes' and 'edges' arrays.",
            exit_code=2,
            file=source_name,
            line=exc.lineno,
            column=exc.colno,
        )
    try:
        return Graph.from_dict(payload), source_path
    except ValueError as exc:
        raise CliError(
            "E_GRAPH_JSON",
            str(exc),
            hint="Provide an object with 'nodes' and 'edges' arrays.",
            exit_code=2,
            file=source_name,
        )


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


def _write_bytes(path: Path, content: bytes) -> None:
    try:
        path.write_bytes(content)
    except OSError as exc:
        raise CliError(
            "E_IO_WRITE",
            f"failed to write output file: {path}",
            hint=str(exc),
            exit_code=4,
            file=str(path),
        )


def _print_json(payload: object) -> None:
    sys.stdout.write(json.dumps(payload, indent=2) + "\n")


def _error_from_exception(exc: Exception) -> CliError:
    if isinstance(exc, CliError):
        return exc
    if isinstance(exc, ValueError):
        return CliError(
            "E_ARGS",
            str(exc),
            hint="Check option values; run with --help for usage.",
            exit_code=2,
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


def _handle_parse(args: argparse.Namespace) -> int:
    graph, _path = _load_graph(args)
    result = None
    if args.layout:
        result = compute_layout(graph, args.width)
        result.apply(graph)
    sys.stdout.write(export.to_json(graph, result) + "\n")
    return 0


def _handle_render(args: argparse.Namespace) -> int:
    if args.stdout and args.output:
        raise CliError(
            "E_ARGS",
            "--stdout and --output are mutually exclusive",
            hint="Choose either --stdout or --output.",
            exit_code=2,
        )
    if args.scale <= 0:
        raise CliError(
            "E_ARGS",
            "--scale must be > 0",
            hint="Use a positive scale factor like 1 or 2.",
            exit_code=2,
        )
    for name in ("width", "height"):
        value = getattr(args, name)
        if value is not None and value <= 0:
            raise CliError("E_ARGS", f"--{name} must be > 0", exit_code=2)

    graph, source_path = _load_graph(args)
    layout_config = LayoutConfig()
    view = ViewState(config=ViewConfig.from_env(), scale=args.scale)
    result = compute_layout(graph, args.width, layout_config)
    result.apply(graph)

    if args.select:
        if args.select not in graph:
            raise CliError(
                "E_ARGS",
                f"--select: unknown node id {args.select!r}",
                hint="Run `flowscope parse` to list node ids.",
                exit_code=2,
            )
        view.select(args.select, graph.neighbors(args.select))
    if args.type_filter:
        view.set_type_filter(args.type_filter)
    if args.query:
        view.apply_query(args.query, classify(args.query, graph))
    view.set_annotation(args.view_mode)

    width = result.canvas_width
    if args.height is not None:
        height = float(args.height)
    else:
        bounds = result.bounds()
        height = bounds[3] + layout_config.top_margin / 2.0 if bounds else 200.0
    surface = Surface(round(width * view.scale), round(height * view.scale))
    render(graph, result, view, surface)

    if args.data_url:
        sys.stdout.write(export.to_data_url(surface) + "\n")
        return 0

    png_bytes = export.to_png_bytes(surface)
    if args.stdout or (source_path is None and not args.output):
        sys.stdout.buffer.write(png_bytes)
        return 0

    output_path = Path(args.output) if args.output else source_path.with_suffix(".png")
    _write_bytes(output_path, png_bytes)
    print(f"Wrote {output_path}")
    return 0


def _handle_query(args: argparse.Namespace) -> int:
    graph, _path = _load_graph(args)
    result = classify(args.query, graph)
    _print_json(
        {
            "query": args.query,
            "mode": result.mode.value,
            "rule": result.rule,
            "targets": [node_id for node_id in graph.nodes if node_id in result.target_ids],
        }
    )
    return 0


def _handle_suggest(args: argparse.Namespace) -> int:
    graph, _path = _load_graph(args)
    for suggestion in suggest_queries(graph):
        print(suggestion)
    return 0


def _handle_stats(args: argparse.Namespace) -> int:
    graph, _path = _load_graph(args)
    payload = summarize(graph).to_dict()
    payload["warnings"] = list(graph.diagnostics)
    _print_json(payload)
    return 0


def _handle_convert(args: argparse.Namespace) -> int:
    graph, _path = _load_graph(args)
    text = export.to_mermaid(graph) if args.to == "mermaid" else export.to_json(graph) + "\n"
    if args.output:
        output_path = Path(args.output)
        _write_text(output_path, text)
        print(f"Wrote {output_path}")
        return 0
    sys.stdout.write(text)
    return 0


HANDLERS = {
    "parse": _handle_parse,
    "render": _handle_render,
    "query": _handle_query,
    "suggest": _handle_suggest,
    "stats": _handle_stats,
    "convert": _handle_convert,
}


def main(argv: Optional[Iterable[str]] = None) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()

    if not raw_argv:
        err = CliError(
            "E_ARGS",
            "missing subcommand",
            hint=f"Use one of: {COMMANDS}.",
            exit_code=2,
        )
        _emit_error(err, error_format="text")
        return err.exit_code

    debug = "--debug" in raw_argv or debug_enabled()
    error_format = "text"
    if "--error-format" in raw_argv:
        idx = raw_argv.index("--error-format")
        if idx + 1 < len(raw_argv):
            error_format = raw_argv[idx + 1]

    try:
        args = parser.parse_args(raw_argv)
        error_format = args.error_format
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(name)s %(levelname)s: %(message)s",
        )

        if args.command in HANDLERS:
            return HANDLERS[args.command](args)
        if args.command == "cheatsheet":
            print(load_cheatsheet())
            return 0

        raise CliError(
            "E_ARGS",
            "missing subcommand",
            hint=f"Use one of: {COMMANDS}.",
            exit_code=2,
        )
    except UsageError as exc:
        err = CliError(
            "E_ARGS",
            str(exc),
            hint=f"Use subcommands: {COMMANDS}.",
            exit_code=2,
        )
        _emit_error(err, error_format=error_format)
        return err.exit_code
    except Exception as exc:  # pragma: no cover - exercised in integration tests
        err = _error_from_exception(exc)
        _emit_error(err, error_format=error_format)
        if debug:
            traceback.print_exc(file=sys.stderr)
        return err.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
