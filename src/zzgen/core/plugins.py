import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from zzgen.core.cache import Caches
from zzgen.core.decls import parse_file_or_directory
from zzgen.core.entity import DeclEntities
from zzgen.core.ports.plugin import Plugin

logger = logging.getLogger(__name__)


class PluginRegistry:
    """Plugins by unique name, in registration order."""

    def __init__(self) -> None:
        self._plugins: dict[str, Plugin] = {}

    def register(self, plugin: Plugin) -> Plugin:
        if plugin.name in self._plugins:
            logger.debug("Replacing registered plugin %s", plugin.name)
        self._plugins[plugin.name] = plugin
        return plugin

    def get(self, name: str) -> Plugin | None:
        return self._plugins.get(name)

    def names(self) -> list[str]:
        return list(self._plugins)

    def __iter__(self) -> Iterator[Plugin]:
        return iter(list(self._plugins.values()))

    def __len__(self) -> int:
        return len(self._plugins)

    def __contains__(self, name: object) -> bool:
        return name in self._plugins


registry = PluginRegistry()


def register_plugin(plugin: Plugin) -> Plugin:
    return registry.register(plugin)


@dataclass
class CollectPlugin:
    """Plugin that only records the entities it is given.

    Binds annotations for a plugin name that has no implementation of its own.
    """

    name: str
    arg_names: list[str] = field(default_factory=list)
    description: str = "collect bound entities"
    entities: DeclEntities = field(default_factory=DeclEntities)

    def args(self) -> tuple[list[str], dict[str, str]]:
        return list(self.arg_names), {}

    def run(self, entities: DeclEntities) -> None:
        self.entities.extend(entities)


@dataclass
class PluginEntity:
    """A plugin together with the extra options given on the command line."""

    plugin: Plugin
    options: Mapping[str, str] = field(default_factory=dict)

    def run(self, caches: Caches, filename: str | Path, prefix: str, workers: int | None = None) -> DeclEntities:
        decls = parse_file_or_directory(caches, filename, prefix, workers)
        entities = decls.parse(self.plugin, self.options)
        logger.info("Running plugin %s on %d entities", self.plugin.name, len(entities))
        self.plugin.run(entities)
        return entities


def run_plugins(
    plugins: Iterable[PluginEntity],
    caches: Caches,
    filename: str | Path,
    prefix: str,
    workers: int | None = None,
) -> None:
    """Run each plugin over ``filename`` in order, stopping at the first failure."""
    for entity in plugins:
        entity.run(caches, filename, prefix, workers)
