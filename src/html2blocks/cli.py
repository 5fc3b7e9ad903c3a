"""Command-line interface for html2blocks."""

from __future__ import annotations

import argparse
import os
import re
import sys
from pathlib import Path

from .version import __version__

FORMAT_CHOICES = {
    "json": ("json",),
    "markdown": ("markdown",),
    "both": ("json", "markdown"),
}
HEX_COLOR_RE = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")


def _get_usage() -> str:
    return (
        f"html2blocks {__version__}\n"
        "Usage:\n"
        "  html2blocks [--help] [--version|--ver]\n"
        "  html2blocks (--from-file PATH | --doc-id ID) --to-dir TO_DIR [options]\n\n"
        "Options:\n"
        "  --format FORMAT              Output format: json, markdown or both (default: both)\n"
        "  --span-iterations N          Maximum span rewrite passes (default: 5)\n"
        "  --max-image-width N          Clamp image width to N pixels (default: 600)\n"
        "  --default-image-height N     Height for images without one (default: 200)\n"
        "  --link-color HEX             Color forced on internal links (default: #1155cc)\n"
        "  --verbose                    Verbose progress logs\n"
        "  --debug                      Debug logs"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("--help", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--ver", action="store_true")
    parser.add_argument("--from-file", help="Exported HTML document to parse")
    parser.add_argument("--doc-id", help="Identifier of a document to fetch and parse")
    parser.add_argument("--to-dir", help="Output directory")
    parser.add_argument("--verbose", action="store_true", help="Verbose progress logs")
    parser.add_argument("--debug", action="store_true", help="Debug logs")
    parser.add_argument("--format", default="both", help="Output format: json, markdown or both")
    parser.add_argument(
        "--span-iterations",
        type=int,
        default=5,
        help="Maximum number of span rewrite passes (default: 5)",
    )
    parser.add_argument(
        "--max-image-width",
        type=int,
        default=600,
        help="Maximum image width in pixels (default: 600)",
    )
    parser.add_argument(
        "--default-image-height",
        type=int,
        default=200,
        help="Image height used when the source gives none (default: 200)",
    )
    parser.add_argument(
        "--link-color",
        default="#1155cc",
        help="Color forced on blocks holding an internal link (default: #1155cc)",
    )
    return parser


def _validate_numeric_args(args: argparse.Namespace) -> str | None:
    if args.span_iterations is None or args.span_iterations <= 0:
        return "Invalid value for --span-iterations: must be > 0"
    if args.max_image_width is None or args.max_image_width <= 0:
        return "Invalid value for --max-image-width: must be > 0"
    if args.default_image_height is None or args.default_image_height <= 0:
        return "Invalid value for --default-image-height: must be > 0"
    if not HEX_COLOR_RE.match(args.link_color or ""):
        return "Invalid value for --link-color: expected #rgb or #rrggbb"
    if args.format not in FORMAT_CHOICES:
        return f"Invalid value for --format: choose from {', '.join(sorted(FORMAT_CHOICES))}"
    return None


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    args, unknown = parser.parse_known_args(argv)
    if unknown:
        print(_get_usage())
        return 2

    if not argv or args.help:
        print(_get_usage())
        return 0

    if args.version or args.ver:
        print(__version__)
        return 0

    numeric_error = _validate_numeric_args(args)
    if numeric_error:
        print(numeric_error, file=sys.stderr)
        return 6

    if bool(args.from_file) == bool(args.doc_id):
        print(_get_usage())
        print("Exactly one of --from-file and --doc-id is required", file=sys.stderr)
        return 6

    if not args.to_dir:
        print(_get_usage())
        print("Option --to-dir is required", file=sys.stderr)
        return 6

    to_dir = Path(args.to_dir).expanduser().resolve()
    if to_dir.exists() and not to_dir.is_dir():
        print(f"Output path is not a directory: {to_dir}", file=sys.stderr)
        return 7

    try:
        from html2blocks import core, fetch, render
    except Exception as exc:
        print(f"Unable to import html2blocks core: {exc}", file=sys.stderr)
        return 6

    core.setup_logging(args.verbose, args.debug)

    if args.from_file:
        source_path = Path(args.from_file).expanduser().resolve()
        if not source_path.exists() or not source_path.is_file():
            print(f"Source file not found: {source_path}", file=sys.stderr)
            return 6
        raw_html = source_path.read_text(encoding="utf-8", errors="replace")
        stem = source_path.stem
    else:
        try:
            raw_html = fetch.fetch_document(args.doc_id, template=os.environ.get(fetch.EXPORT_URL_ENV))
        except RuntimeError as exc:
            print(str(exc), file=sys.stderr)
            return 6
        stem = args.doc_id

    config = core.BuildConfig(
        span_iteration_limit=int(args.span_iterations),
        max_image_width=int(args.max_image_width),
        default_image_height=int(args.default_image_height),
        link_color=str(args.link_color).lower(),
        verbose=bool(args.verbose),
    )

    try:
        model = core.build_document_model(raw_html, config)
    except RuntimeError as exc:
        print(str(exc), file=sys.stderr)
        return 6

    try:
        written = render.write_outputs(model, to_dir, stem, FORMAT_CHOICES[args.format])
    except OSError as exc:
        print(f"Unable to write outputs to {to_dir}: {exc}", file=sys.stderr)
        return 7

    if args.verbose:
        for path in written:
            print(f"Written: {path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
