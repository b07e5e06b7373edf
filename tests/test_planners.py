"""Tests for the planners: shape of the IR they produce."""

import pytest

from entitygen.config import GeneratorConfig
from entitygen.context_builder import build_context
from entitygen.driver import PLANNERS
from entitygen.entity_planner import EntityPlanner
from entitygen.interface_planner import REPOSITORY_WRITER_PLANNER, STORE_READER_PLANNER
from entitygen.ir import BoolOp, Call, Decl, For, If, Return, compare, is_none, not_, or_
from entitygen.loader import load_specs
from entitygen.planning import NameAllocator, Planner
from entitygen.repository_planner import RepositoryPlanner, plan_get, plan_put, plan_repository
from entitygen.store_planner import InMemoryStorePlanner


@pytest.fixture
def context(spec_root):
    specs, errors = load_specs(GeneratorConfig(source_roots=[spec_root]))
    assert errors == []
    return build_context(specs)


def _loops(stmts):
    """Every For node, depth first."""
    for stmt in stmts:
        if isinstance(stmt, For):
            yield stmt
            yield from _loops(stmt.body)
        elif isinstance(stmt, If):
            yield from _loops(stmt.then)
            yield from _loops(stmt.orelse)


class TestPlannerRegistry:
    """The driver's planners run entity classes first."""

    def test_all_are_planners(self):
        assert all(isinstance(p, Planner) for p in PLANNERS)

    def test_entity_planner_first(self):
        assert isinstance(PLANNERS[0], EntityPlanner)
        assert [p.name for p in PLANNERS] == [
            "entity", "store-reader", "store-writer", "repository-reader",
            "repository-writer", "in-memory-store", "repository",
        ]


class TestEntityPlanner:
    """Test the entity class plans."""

    def test_one_module_per_entity(self, context):
        modules = EntityPlanner().plan(context)
        assert sorted(m.module for m in modules) == [
            "chat.channel.channel",
            "chat.channel.member",
            "chat.conversation.chat_thread",
            "chat.device.device",
            "chat.message.message",
            "chat.post.post",
            "chat.user.user",
        ]

    def test_constructor_follows_declaration_order(self, context):
        modules = {m.module: m for m in EntityPlanner().plan(context)}
        cls = modules["chat.message.message"].classes[0]
        init = next(m for m in cls.methods if m.name == "__init__")
        assert [p.name for p in init.params] == [
            "message_id", "body", "sender", "recipients",
            "recipients_to_read_list", "users_by_devices",
        ]

    def test_base_class_uses_id_type(self, context):
        modules = {m.module: m for m in EntityPlanner().plan(context)}
        assert modules["chat.user.user"].classes[0].bases == ["Entity[int]"]
        assert modules["chat.device.device"].classes[0].bases == ['Entity["DeviceType"]']

    def test_imports(self, context):
        modules = {m.module: m for m in EntityPlanner().plan(context)}
        message = modules["chat.message.message"]
        assert {r.qualified for r in message.imports} == {"entitygen.core.Entity"}
        assert {r.qualified for r in message.type_imports} == {"chat.user.user.User", "chat.device.device.Device"}
        device = modules["chat.device.device"]
        assert {r.qualified for r in device.type_imports} == {"chat.device.device_spec.DeviceType"}

    def test_entity_type_literal(self, context):
        modules = {m.module: m for m in EntityPlanner().plan(context)}
        cls = modules["chat.conversation.chat_thread"].classes[0]
        entity_type = next(m for m in cls.methods if m.name == "entity_type")
        assert entity_type.body[0].value.text == "'chat.conversation.chat_thread.ChatThread'"


class TestPutPlan:
    """Test the put_<entity> plans."""

    def test_leaf_entity_has_no_traversal(self, context):
        put = plan_put(context.entity("User"), context)
        assert put.name == "put_user"
        assert list(_loops(put.body)) == []
        assert isinstance(put.body[-1], Return)

    def test_direct_property_is_straight_line(self, context):
        put = plan_put(context.entity("Message"), context)
        calls = [s for s in put.body if isinstance(s, Call)]
        assert ("dirty", "add", "sender") in [
            (c.recv.text, c.method, c.args[0].text) for c in calls
        ]

    def test_loop_names_unique(self, context):
        put = plan_put(context.entity("Message"), context)
        names = [loop.var for loop in _loops(put.body)]
        assert names == ["item1", "item2", "key3", "key4, value4", "item5", "item6"]
        assert len(set(names)) == len(names)

    def test_loop_names_skip_property_names(self, context):
        put = plan_put(context.entity("Post"), context)
        assert [loop.var for loop in _loops(put.body)] == ["item2"]

    def test_map_walks_only_entity_side(self, context):
        put = plan_put(context.entity("ChatThread"), context)
        loops = list(_loops(put.body))
        participants = [loop for loop in loops if loop.var.startswith("value")]
        assert participants and participants[0].iter.method == "values"

    def test_nested_composite_is_put_transitively(self, context):
        put = plan_put(context.entity("ChatThread"), context)
        messages_loop = next(loop for loop in _loops(put.body) if loop.var.startswith("item"))
        call = messages_loop.body[0]
        assert call.method == "update"
        assert call.args[0].method == "put_message"

    def test_pass_through_property_ignored(self, context):
        put = plan_put(context.entity("ChatThread"), context)
        declared = [s.name for s in put.body if isinstance(s, Decl)]
        assert "pinned" not in declared


class TestGetPlan:
    """Test the get_<entity> plans."""

    def test_leaf_entity_reads_directly(self, context):
        get = plan_get(context.entity("User"), context)
        assert len(get.body) == 1
        assert get.body[0].value.method == "_read_user"

    def test_composite_returns_cached_when_clean(self, context):
        get = plan_get(context.entity("Message"), context)
        guard = get.body[-2]
        assert isinstance(guard, If)
        assert guard.cond == not_("dirty")
        rebuilt = get.body[-1].value
        assert rebuilt.method == "Message"
        assert [a.text for a in rebuilt.args] == [
            "cached.get_message_id()",
            "cached.get_body()",
            "latest1",
            "recipients",
            "recipients_to_read_list",
            "users_by_devices",
        ]

    def test_generated_locals_skip_property_names(self, context):
        get = plan_get(context.entity("Post"), context)
        refresh = next(s for s in get.body if isinstance(s, If) and isinstance(s.cond, BoolOp))
        assert refresh.cond == or_(is_none("latest2"), compare("latest2", "==", "latest1"))
        assert [loop.var for loop in _loops(get.body)] == ["item3"]
        rebuilt = get.body[-1].value
        assert [a.text for a in rebuilt.args] == ["cached.get_post_id()", "latest2", "item1", "latest4"]

    def test_changed_flags_per_container(self, context):
        get = plan_get(context.entity("Message"), context)
        flags = [s.name for s in get.body if isinstance(s, Decl) and s.name.endswith("_changed")]
        assert flags == [
            "recipients_changed", "recipients_to_read_list_changed", "users_by_devices_changed",
        ]

    def test_concrete_copies(self, context):
        get = plan_get(context.entity("ChatThread"), context)
        copies = {s.name: s.type for s in get.body if isinstance(s, Decl) and s.name.endswith("_copy")}
        assert copies == {"messages_copy": "list[Message]", "participants_copy": "dict[str, User]"}


class TestRepositoryPlan:
    """Test the per-entity members of the repository."""

    def test_entries(self, context):
        repository = plan_repository(context)
        by_name = {e.plan.name: e for e in repository.entries}
        assert by_name["Message"].put.name == "put_message"
        assert by_name["Message"].get.name == "get_message"

    def test_builder_nested(self, context):
        module = RepositoryPlanner().plan(context)[0]
        cls = module.classes[0]
        assert cls.bases == ["INormalizedEntityRepositoryReader", "INormalizedEntityRepositoryWriter"]
        assert [c.name for c in cls.classes] == ["Builder"]
        assert [m.name for m in cls.classes[0].methods] == ["__init__", "set_readers", "set_writers", "build"]

    def test_entities_imported_at_runtime(self, context):
        module = RepositoryPlanner().plan(context)[0]
        runtime = {r.name for r in module.imports}
        assert {"Message", "User", "Device", "ChatThread", "InMemoryEntityStore"} <= runtime
        assert "DeviceType" in {r.name for r in module.type_imports}


class TestInterfacesAndStore:
    """Test the interface and store plans."""

    def test_reader_methods_are_abstract(self, context):
        cls = STORE_READER_PLANNER.plan(context)[0].classes[0]
        assert cls.bases == ["abc.ABC"]
        assert all(m.decorators == ["abc.abstractmethod"] for m in cls.methods)
        assert {m.name for m in cls.methods} == {
            "get_user", "get_device", "get_message", "get_chat_thread", "get_post", "get_channel", "get_member",
        }

    def test_writer_has_dispatching_put(self, context):
        module = REPOSITORY_WRITER_PLANNER.plan(context)[0]
        put = module.classes[0].methods[0]
        assert put.name == "put"
        assert put.decorators == []
        assert put.returns == "set[Entity]"
        assert "User" in {r.name for r in module.imports}

    def test_store_module_location(self, context):
        module = InMemoryStorePlanner().plan(context)[0]
        assert module.module == "entitynormalizer.store.in_memory_entity_store"
        assert module.classes[0].bases == ["IEntityStoreReader", "IEntityStoreWriter"]

    def test_store_holds_one_dict_per_entity(self, context):
        init = InMemoryStorePlanner().plan(context)[0].classes[0].methods[0]
        fields = {s.name: s.type for s in init.body}
        assert fields["self._user_by_id"] == "dict[int, User]"
        assert fields["self._device_by_id"] == "dict[DeviceType, Device]"
        assert len(fields) == 7


class TestNameAllocator:
    """Generated locals never reuse a name already bound in the method."""

    def test_numbers_skip_taken_names(self):
        names = NameAllocator(["value1", "latest3"])
        assert [names.next(), names.next(), names.next()] == [2, 4, 5]

    def test_take_appends_underscores(self):
        names = NameAllocator(["dirty"])
        assert names.take("dirty") == "dirty_"
        assert names.take("dirty") == "dirty__"
        assert names.take("owner") == "owner"

    def test_copy_name_avoids_property(self, context):
        get = plan_get(context.entity("Post"), context)
        declared = [s.name for s in get.body if isinstance(s, Decl)]
        assert "item1_copy" in declared
        assert declared.count("item1") == 1
