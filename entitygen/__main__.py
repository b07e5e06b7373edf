"""Entry point: python -m entitygen

Reads @entity_spec classes under the source roots and writes the entity
classes next to them, plus the entitynormalizer.store package under the
output root.
"""

from __future__ import annotations

import argparse
import sys

from .config import GeneratorConfig
from .driver import generate
from .logging_config import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="entitygen",
        description="Generate normalized entity repositories from entity specs.",
    )
    parser.add_argument(
        "source_roots", nargs="*", metavar="SOURCE_ROOT",
        help="directories searched for spec modules (default: current directory)",
    )
    parser.add_argument(
        "-o", "--output", metavar="OUTPUT_ROOT",
        help="root for generated modules (default: first source root)",
    )
    parser.add_argument("--dry-run", action="store_true", help="render without writing files")
    parser.add_argument("-v", "--verbose", action="store_true", help="log debug output")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    report = generate(GeneratorConfig.from_args(args))
    for diagnostic in report.diagnostics:
        print(diagnostic.format(), file=sys.stderr)
    print(f"Generated {len(report.written)} files ({report.entity_count} entities)")
    return 0 if report.ok else 1

if __name__ == "__main__":
    sys.exit(main())
