"""Errors raised during generation and the diagnostics reported for them."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path


class SpecErrorKind(enum.Enum):
    MISSING_ID = "missing-id"
    MULTIPLE_IDS = "multiple-ids"
    INVALID_SPEC = "invalid-spec"


class EntityGenError(Exception):
    """Base class for generator errors."""


class SpecError(EntityGenError):
    """A spec declaration that cannot be turned into an entity."""

    def __init__(
        self,
        kind: SpecErrorKind,
        spec_name: str,
        detail: str = "",
        path: Path | None = None,
        lineno: int | None = None,
    ) -> None:
        self.kind = kind
        self.spec_name = spec_name
        self.detail = detail
        self.path = path
        self.lineno = lineno
        super().__init__(self._message())

    @classmethod
    def missing_id(cls, spec_name: str, path: Path | None = None, lineno: int | None = None) -> SpecError:
        return cls(SpecErrorKind.MISSING_ID, spec_name, "no field is marked with EntityId", path, lineno)

    @classmethod
    def multiple_ids(
        cls, spec_name: str, fields: list[str], path: Path | None = None, lineno: int | None = None,
    ) -> SpecError:
        detail = "more than one field is marked with EntityId: " + ", ".join(fields)
        return cls(SpecErrorKind.MULTIPLE_IDS, spec_name, detail, path, lineno)

    @classmethod
    def invalid(
        cls, spec_name: str, detail: str, path: Path | None = None, lineno: int | None = None,
    ) -> SpecError:
        return cls(SpecErrorKind.INVALID_SPEC, spec_name, detail, path, lineno)

    def _message(self) -> str:
        if self.detail:
            return f"{self.spec_name}: {self.detail}"
        return self.spec_name


class EmitError(EntityGenError):
    """Writing a generated file failed."""

    def __init__(self, path: Path, cause: BaseException) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"cannot write {path}: {cause}")


@dataclass(frozen=True)
class Diagnostic:
    """A problem reported to the user, keyed by the offending spec."""
    kind: str
    spec_name: str
    message: str
    path: Path | None = None
    lineno: int | None = None

    @classmethod
    def from_error(cls, error: EntityGenError, spec_name: str = "-") -> Diagnostic:
        if isinstance(error, SpecError):
            return cls(error.kind.value, error.spec_name, error.detail, error.path, error.lineno)
        if isinstance(error, EmitError):
            return cls("emit-error", spec_name, str(error.cause), error.path)
        return cls("error", spec_name, str(error))

    def format(self) -> str:
        location = ""
        if self.path is not None:
            location = f"{self.path}:{self.lineno}: " if self.lineno else f"{self.path}: "
        return f"{location}error[{self.kind}] {self.spec_name}: {self.message}"
