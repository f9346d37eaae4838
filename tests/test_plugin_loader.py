"""
Tests for storage plugin resolution and loading.
"""

from types import SimpleNamespace

import pytest

from core.storage import (
    KVStoragePluginFactory,
    PluginLoadError,
    PluginLoader,
    PluginRegistry,
    UnknownPluginError,
    create_default_registry,
)
from core.storage.memory import InMemoryKVStorage, InMemoryKVStorageFactory


class CountingFactory(KVStoragePluginFactory):
    created = 0

    async def create(self, options):
        CountingFactory.created += 1
        return InMemoryKVStorage()


class RejectingFactory(KVStoragePluginFactory):
    async def create(self, options):
        raise ConnectionError("backend unreachable")


class WrongTypeFactory(KVStoragePluginFactory):
    async def create(self, options):
        return {"not": "a plugin"}


@pytest.mark.asyncio
async def test_load_memory_plugin(registry):
    """Test loading the built-in plugin with options."""
    loader = PluginLoader("memory", '{"initial": {"greeting": "hello"}}', registry=registry)

    plugin = await loader.load()

    assert isinstance(plugin, InMemoryKVStorage)
    assert await plugin.get("greeting") == "hello"
    assert loader.plugin is plugin


@pytest.mark.asyncio
async def test_load_happens_once(registry):
    """Test that repeated loads return the same plugin instance."""
    CountingFactory.created = 0
    registry.register("counting", CountingFactory)
    loader = PluginLoader("counting", "{}", registry=registry)

    first = await loader.load()
    second = await loader.load()

    assert first is second
    assert CountingFactory.created == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("options_json", ["{not json", "", "{'single': 'quotes'}"])
async def test_invalid_options_json(registry, options_json):
    """Test that malformed options abort loading."""
    loader = PluginLoader("memory", options_json, registry=registry)

    with pytest.raises(PluginLoadError) as exc_info:
        await loader.load()

    assert exc_info.value.step == "options"
    assert loader.plugin is None


@pytest.mark.asyncio
async def test_unknown_plugin(registry):
    """Test that unregistered identifiers fail at resolution."""
    loader = PluginLoader("@hyperledger-labs/nope", "{}", registry=registry)

    with pytest.raises(PluginLoadError) as exc_info:
        await loader.load()

    assert exc_info.value.step == "resolve"
    assert isinstance(exc_info.value.__cause__, UnknownPluginError)
    assert "memory" in str(exc_info.value)


@pytest.mark.asyncio
async def test_factory_rejection(registry):
    """Test that a failing create() is reported as a load error."""
    registry.register("rejecting", RejectingFactory)
    loader = PluginLoader("rejecting", "{}", registry=registry)

    with pytest.raises(PluginLoadError) as exc_info:
        await loader.load()

    assert exc_info.value.step == "create"
    assert isinstance(exc_info.value.__cause__, ConnectionError)


@pytest.mark.asyncio
async def test_factory_must_return_storage_plugin(registry):
    """Test that factories returning something else are rejected."""
    registry.register("wrong", WrongTypeFactory)

    with pytest.raises(PluginLoadError, match="not a KVStoragePlugin"):
        await PluginLoader("wrong", "{}", registry=registry).load()


@pytest.mark.asyncio
async def test_memory_options_must_be_object(registry):
    """Test option type checking in the in-memory factory."""
    with pytest.raises(PluginLoadError) as exc_info:
        await PluginLoader("memory", "[1, 2]", registry=registry).load()

    assert exc_info.value.step == "create"


def test_registry_rejects_duplicates(registry):
    """Test registration rules."""
    with pytest.raises(ValueError):
        registry.register("memory", InMemoryKVStorageFactory)

    registry.register("memory", CountingFactory, replace=True)
    assert registry.resolve("memory") is CountingFactory

    registry.unregister("memory")
    assert "memory" not in registry
    with pytest.raises(UnknownPluginError):
        registry.resolve("memory")


def test_registry_discovers_entry_points(monkeypatch):
    """Test that installed plugins are picked up from entry points."""
    published = [
        SimpleNamespace(name="counting", load=lambda: CountingFactory),
        SimpleNamespace(name="memory", load=lambda: CountingFactory),
    ]
    monkeypatch.setattr(
        "core.storage.registry.entry_points",
        lambda group: published if group == "bif_api_server.storage_plugins" else [],
    )

    registry = create_default_registry()

    assert registry.identifiers() == ["counting", "memory", "mongodb"]
    # Built-ins win over published plugins with the same name
    assert registry.resolve("memory") is InMemoryKVStorageFactory


@pytest.mark.asyncio
async def test_discovered_plugin_loads(monkeypatch):
    """Test loading a plugin registered through an entry point."""
    CountingFactory.created = 0
    monkeypatch.setattr(
        "core.storage.registry.entry_points",
        lambda group: [SimpleNamespace(name="counting", load=lambda: CountingFactory)],
    )
    registry = PluginRegistry()
    registry.discover()

    plugin = await PluginLoader("counting", "null", registry=registry).load()

    assert isinstance(plugin, InMemoryKVStorage)
    assert CountingFactory.created == 1


@pytest.mark.asyncio
async def test_memory_storage_operations():
    """Test the in-memory key/value semantics."""
    storage = await InMemoryKVStorageFactory().create({})

    assert not await storage.has("a")
    await storage.set("a", {"n": 1})
    assert await storage.has("a")

    value = await storage.get("a")
    value["n"] = 2
    assert await storage.get("a") == {"n": 1}

    assert await storage.delete("a")
    assert not await storage.delete("a")
    assert await storage.get("a") is None


@pytest.mark.asyncio
async def test_mongodb_plugin_requires_url():
    """Test that the MongoDB plugin refuses to start without a connection URL."""
    registry = create_default_registry(discover=False)

    with pytest.raises(PluginLoadError) as exc_info:
        await PluginLoader("mongodb", '{"database": "bif"}', registry=registry).load()

    assert exc_info.value.step == "create"
    assert isinstance(exc_info.value.__cause__, ValueError)
