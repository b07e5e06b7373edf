"""Run a generation: intake, context, planners, emitter.

Spec errors are collected and reported together. A failing planner or a
failing file is reported and the rest of the run carries on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Sequence

from .codegen import Emitter
from .config import GeneratorConfig
from .context_builder import build_context
from .entity_planner import EntityPlanner
from .errors import Diagnostic, EmitError, EntityGenError
from .interface_planner import (
    REPOSITORY_READER_PLANNER,
    REPOSITORY_WRITER_PLANNER,
    STORE_READER_PLANNER,
    STORE_WRITER_PLANNER,
)
from .loader import load_specs
from .model import EntitySpec
from .planning import Planner
from .repository_planner import RepositoryPlanner
from .store_planner import InMemoryStorePlanner

logger = logging.getLogger(__name__)

# Entity classes first: every other planner refers to them
PLANNERS: tuple[Planner, ...] = (
    EntityPlanner(),
    STORE_READER_PLANNER,
    STORE_WRITER_PLANNER,
    REPOSITORY_READER_PLANNER,
    REPOSITORY_WRITER_PLANNER,
    InMemoryStorePlanner(),
    RepositoryPlanner(),
)


@dataclass
class GenerationReport:
    written: list[Path] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    entity_count: int = 0

    @property
    def ok(self) -> bool:
        return not self.diagnostics


def generate(config: GeneratorConfig, planners: Sequence[Planner] = PLANNERS) -> GenerationReport:
    """Generate code for every spec found under the configured source roots."""
    specs, errors = load_specs(config)
    return generate_from_specs(specs, config, errors, planners)


def generate_from_specs(
    specs: Iterable[EntitySpec],
    config: GeneratorConfig,
    errors: Iterable[EntityGenError] = (),
    planners: Sequence[Planner] = PLANNERS,
) -> GenerationReport:
    report = GenerationReport()
    report.diagnostics.extend(Diagnostic.from_error(e) for e in errors)

    specs = list(specs)
    if not specs:
        logger.info("No entity specs to generate")
        return report

    context = build_context(specs)
    report.diagnostics.extend(Diagnostic.from_error(e) for e in context.errors)
    report.entity_count = len(context.entities)
    if not context.entities:
        return report

    emitter = Emitter(config.output_root, dry_run=config.dry_run)
    for planner in planners:
        try:
            modules = planner.plan(context)
        except EntityGenError as e:
            logger.error("Planner %s failed: %s", planner.name, e)
            report.diagnostics.append(Diagnostic.from_error(e, planner.name))
            continue
        for module in modules:
            try:
                report.written.append(emitter.emit(module))
            except EmitError as e:
                logger.error("Cannot write %s: %s", e.path, e.cause, extra={"spec": module.spec_name})
                report.diagnostics.append(Diagnostic.from_error(e, module.spec_name))

    logger.info("Generated %d files for %d entities", len(report.written), report.entity_count)
    return report
