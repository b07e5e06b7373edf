"""Tests for the loader module (spec intake)."""

import textwrap

from entitygen.config import GeneratorConfig
from entitygen.errors import SpecErrorKind
from entitygen.loader import discover_spec_files, load_specs, module_name_for_path, parse_specs


def _parse(body: str, module: str = "app.things.thing_spec"):
    return parse_specs(_HEADER + textwrap.dedent(body), module)


_HEADER = """
from typing import Annotated, ClassVar, List as L, Optional
import collections.abc as cabc
from entitygen.annotations import EntityId, entity_spec
"""


class TestParseSpecs:
    """Test reading @entity_spec classes from source text."""

    @classmethod
    def setup_class(cls):
        specs, errors = _parse("""
        @entity_spec(name="thing", class_name="widget")
        class ThingSpec:
            limit: ClassVar[int] = 3

            thing_id: Annotated[int, EntityId]
            label: str
            parts: L["Part"]
            lookup: cabc.Mapping[str, Part]
            maybe: Optional[Part]
            either: int | None
        """)
        assert errors == []
        cls.spec = specs[0]
        cls.fields = {f.name: f for f in cls.spec.fields}

    def test_names(self):
        assert self.spec.spec_name == "thing"
        assert self.spec.class_name == "widget"
        assert self.spec.generated_name == "Widget"

    def test_package_and_module(self):
        assert self.spec.package == "app.things"
        assert self.spec.module == "app.things.thing_spec"
        assert self.spec.generated_module == "app.things.widget"

    def test_declaration_order_and_classvar_skipped(self):
        assert [f.name for f in self.spec.fields] == [
            "thing_id", "label", "parts", "lookup", "maybe", "either",
        ]

    def test_id_field(self):
        assert self.spec.id_field == "thing_id"
        assert self.fields["thing_id"].declared.text == "int"
        assert self.fields["thing_id"].declared.qualified == "builtins.int"

    def test_aliased_import_resolves(self):
        parts = self.fields["parts"].declared
        assert parts.raw == "L"
        assert parts.qualified == "typing.List"
        assert parts.text == "L[Part]"

    def test_module_alias_resolves(self):
        lookup = self.fields["lookup"].declared
        assert lookup.qualified == "collections.abc.Mapping"
        assert [a.text for a in lookup.args] == ["str", "Part"]

    def test_union_syntax(self):
        either = self.fields["either"].declared
        assert either.raw == "|"
        assert [a.text for a in either.args] == ["int", "None"]

    def test_names_collected(self):
        assert self.fields["maybe"].declared.names == frozenset({"Optional", "Part"})


class TestIdMarkers:
    """Test the different ways of marking the identifier field."""

    def test_default_value_marker(self):
        specs, errors = _parse("""
        @entity_spec(name="thing")
        class ThingSpec:
            thing_id: int = EntityId()
            label: str
        """)
        assert errors == []
        assert specs[0].id_field == "thing_id"

    def test_missing_id(self):
        specs, errors = _parse("""
        @entity_spec(name="thing")
        class ThingSpec:
            label: str
        """)
        assert specs == []
        assert errors[0].kind is SpecErrorKind.MISSING_ID
        assert errors[0].spec_name == "thing"

    def test_multiple_ids(self):
        specs, errors = _parse("""
        @entity_spec(name="thing")
        class ThingSpec:
            first: Annotated[int, EntityId]
            second: Annotated[int, EntityId]
        """)
        assert specs == []
        assert errors[0].kind is SpecErrorKind.MULTIPLE_IDS
        assert "first, second" in errors[0].detail


class TestInvalidSpecs:
    """Malformed declarations are reported, and other specs still load."""

    def _single_error(self, body: str):
        specs, errors = _parse(body)
        assert len(errors) == 1
        assert errors[0].kind is SpecErrorKind.INVALID_SPEC
        return specs, errors[0]

    def test_missing_name(self):
        _, error = self._single_error("""
        @entity_spec()
        class ThingSpec:
            thing_id: Annotated[int, EntityId]
        """)
        assert "requires a name" in error.detail

    def test_bare_decorator(self):
        _, error = self._single_error("""
        @entity_spec
        class ThingSpec:
            thing_id: Annotated[int, EntityId]
        """)
        assert error.spec_name == "ThingSpec"

    def test_non_literal_name(self):
        _, error = self._single_error("""
        NAME = "thing"

        @entity_spec(name=NAME)
        class ThingSpec:
            thing_id: Annotated[int, EntityId]
        """)
        assert "string literal" in error.detail

    def test_unknown_argument(self):
        _, error = self._single_error("""
        @entity_spec(name="thing", table="things")
        class ThingSpec:
            thing_id: Annotated[int, EntityId]
        """)
        assert "table" in error.detail

    def test_empty_name(self):
        self._single_error("""
        @entity_spec(name="")
        class ThingSpec:
            thing_id: Annotated[int, EntityId]
        """)

    def test_cyclic_alias(self):
        _, error = self._single_error("""
        A = list[B]
        B = list[A]

        @entity_spec(name="thing")
        class ThingSpec:
            thing_id: Annotated[int, EntityId]
            loop: A
        """)
        assert "cyclic type alias" in error.detail

    def test_other_specs_still_load(self):
        specs, _ = self._single_error("""
        @entity_spec(name="")
        class BrokenSpec:
            thing_id: Annotated[int, EntityId]

        @entity_spec(name="good")
        class GoodSpec:
            good_id: Annotated[int, EntityId]
        """)
        assert [s.spec_name for s in specs] == ["good"]

    def test_syntax_error(self):
        specs, errors = parse_specs("class Broken(:\n", "app.broken")
        assert specs == []
        assert errors[0].kind is SpecErrorKind.INVALID_SPEC
        assert errors[0].lineno == 1


class TestTypeAliases:
    """Module-level aliases are expanded in place."""

    def test_alias_expanded(self):
        specs, errors = _parse("""
        from typing import TypeAlias

        Names = list[str]
        Index: TypeAlias = dict[str, Names]

        @entity_spec(name="thing")
        class ThingSpec:
            thing_id: Annotated[int, EntityId]
            index: Index
        """)
        assert errors == []
        index = specs[0].fields[1].declared
        assert index.text == "dict[str, list[str]]"
        assert index.qualified == "builtins.dict"


class TestImports:
    """Imports inside TYPE_CHECKING blocks and relative imports are recorded."""

    def test_type_checking_and_relative(self):
        specs, errors = parse_specs(textwrap.dedent("""
            from typing import TYPE_CHECKING, Annotated
            from entitygen.annotations import EntityId, entity_spec
            from .kinds import Kind

            if TYPE_CHECKING:
                from ..other.thing import Other

            @entity_spec(name="thing")
            class ThingSpec:
                thing_id: Annotated[Kind, EntityId]
        """), "app.things.thing_spec")
        assert errors == []
        imports = specs[0].imports
        assert imports.lookup("Kind").qualified == "app.things.kinds.Kind"
        assert imports.lookup("Other").qualified == "app.other.thing.Other"
        assert specs[0].fields[0].declared.qualified == "app.things.kinds.Kind"


class TestDiscovery:
    """Test finding spec files under a source root."""

    def test_module_name_for_path(self, tmp_path):
        assert module_name_for_path(tmp_path, tmp_path / "chat" / "user" / "user_spec.py") == "chat.user.user_spec"
        assert module_name_for_path(tmp_path, tmp_path / "chat" / "__init__.py") == "chat"

    def test_only_files_mentioning_specs(self, spec_root):
        found = {p.name for p in discover_spec_files(spec_root)}
        assert found == {
            "user_spec.py", "device_spec.py", "message_spec.py", "conversation_spec.py",
            "post_spec.py", "channel_spec.py", "member_spec.py",
        }

    def test_load_specs(self, spec_root):
        specs, errors = load_specs(GeneratorConfig(source_roots=[spec_root]))
        assert errors == []
        assert sorted(s.generated_name for s in specs) == [
            "Channel", "ChatThread", "Device", "Member", "Message", "Post", "User",
        ]
