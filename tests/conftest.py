"""Shared fixtures for entitygen tests.

The ``chat`` spec package under tests/fixtures is copied to a temporary
source root and generated once per session; tests import the generated
modules from there.
"""

from __future__ import annotations

import importlib
import shutil
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

from entitygen.config import GeneratorConfig
from entitygen.driver import generate

FIXTURES = Path(__file__).parent / "fixtures"

_GENERATED_PACKAGES = ("chat", "entitynormalizer")


def _purge_modules() -> None:
    for name in list(sys.modules):
        if name.split(".")[0] in _GENERATED_PACKAGES:
            del sys.modules[name]


@pytest.fixture
def spec_root(tmp_path) -> Path:
    """A fresh source root holding a copy of the chat specs."""
    root = tmp_path / "src"
    shutil.copytree(FIXTURES / "chat", root / "chat")
    return root


# ---------------------------------------------------------------------------
# Generated code: one generation shared by the whole session
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def generated(tmp_path_factory):
    """Generate the chat specs and put the result on sys.path.

    Yields ``(source_root, report)``.
    """
    root = tmp_path_factory.mktemp("generated") / "src"
    shutil.copytree(FIXTURES / "chat", root / "chat")
    report = generate(GeneratorConfig(source_roots=[root]))

    _purge_modules()
    sys.path.insert(0, str(root))
    yield root, report
    sys.path.remove(str(root))
    _purge_modules()


@pytest.fixture(scope="session")
def chat(generated):
    """The generated classes, keyed by class name."""
    def load(module: str, name: str):
        return getattr(importlib.import_module(module), name)

    return SimpleNamespace(
        User=load("chat.user.user", "User"),
        Device=load("chat.device.device", "Device"),
        DeviceType=load("chat.device.device_spec", "DeviceType"),
        Message=load("chat.message.message", "Message"),
        ChatThread=load("chat.conversation.chat_thread", "ChatThread"),
        Post=load("chat.post.post", "Post"),
        Channel=load("chat.channel.channel", "Channel"),
        Member=load("chat.channel.member", "Member"),
        InMemoryEntityStore=load("entitynormalizer.store.in_memory_entity_store", "InMemoryEntityStore"),
        Repository=load("entitynormalizer.store.normalized_entity_repository", "NormalizedEntityRepository"),
        StoreReader=load("entitynormalizer.store.i_entity_store_reader", "IEntityStoreReader"),
        StoreWriter=load("entitynormalizer.store.i_entity_store_writer", "IEntityStoreWriter"),
        RepositoryReader=load(
            "entitynormalizer.store.i_normalized_entity_repository_reader",
            "INormalizedEntityRepositoryReader",
        ),
        RepositoryWriter=load(
            "entitynormalizer.store.i_normalized_entity_repository_writer",
            "INormalizedEntityRepositoryWriter",
        ),
    )


# ---------------------------------------------------------------------------
# Sample entities from the message scenarios
# ---------------------------------------------------------------------------

@pytest.fixture
def people(chat):
    return SimpleNamespace(
        ozzy=chat.User(1, "Ozzy"),
        fozzy=chat.User(2, "Fozzy"),
        gozzy=chat.User(3, "Gozzy"),
        ozzy_renamed=chat.User(1, "Ozzy Osbourne"),
    )


@pytest.fixture
def devices(chat):
    return SimpleNamespace(
        android=chat.Device(chat.DeviceType.ANDROID),
        ios=chat.Device(chat.DeviceType.IOS),
        windows=chat.Device(chat.DeviceType.WINDOWS),
    )


@pytest.fixture
def message(chat, people, devices):
    return chat.Message(
        1,
        "Hello World",
        people.ozzy,
        [people.fozzy, people.gozzy],
        [{people.fozzy: True}, {people.gozzy: False}],
        {
            (devices.android, devices.ios): [people.ozzy, people.fozzy],
            (devices.windows,): [people.gozzy],
        },
    )


@pytest.fixture
def repo(chat):
    return chat.Repository.builder().build()
