"""Generator settings and the fixed names of generated output."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from pathlib import Path

# Package holding the store, repository and interface modules
STORE_PACKAGE = "entitynormalizer.store"

HEADER = "# Generated by entitygen. Do not edit."

# Text that marks a module as worth parsing for specs
SPEC_MARKERS = ("entity_spec", "EntitySpec")


@dataclass
class GeneratorConfig:
    """Where to read specs from and where to write generated modules.

    Spec packages are resolved relative to each source root, and generated
    modules are written under ``output_root`` using their dotted module path.
    """
    source_roots: list[Path] = field(default_factory=lambda: [Path.cwd()])
    output_root: Path | None = None
    dry_run: bool = False

    def __post_init__(self) -> None:
        self.source_roots = [Path(root) for root in self.source_roots]
        if self.output_root is None:
            self.output_root = self.source_roots[0]
        else:
            self.output_root = Path(self.output_root)

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> GeneratorConfig:
        roots = [Path(p) for p in args.source_roots] or [Path.cwd()]
        output = Path(args.output) if args.output else None
        return cls(source_roots=roots, output_root=output, dry_run=args.dry_run)
