"""Entry point: python -m callgen SPEC OUTPUT_DIR

Reads an OpenAPI / Swagger document and writes a client package.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from . import generate
from .codegen import write_files
from .errors import GenerationError
from .loader import load_spec


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="callgen",
        description="Generate a typed async client package from an OpenAPI document.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("spec", help="Path to the OpenAPI / Swagger document (JSON or YAML).")
    parser.add_argument("output_dir", help="Directory to write the generated package into.")
    parser.add_argument(
        "--dispatch",
        action="store_true",
        help="Generate callables that return dispatch thunks instead of awaiting results.",
    )
    parser.add_argument(
        "--package",
        default=None,
        help="Package name used for the base URL environment variable (default: output directory name).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    output_dir = Path(args.output_dir)
    package = args.package or output_dir.name or "client"
    try:
        document = load_spec(args.spec)
        files = generate(document, dispatch=args.dispatch, package=package)
    except GenerationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    written = write_files(files, output_dir)
    print(f"Generated {output_dir} ({len(written)} files)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
