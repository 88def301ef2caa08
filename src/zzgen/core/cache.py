import logging
import os
import threading
from collections.abc import Callable, Hashable
from pathlib import Path
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_SNAPSHOT_ADAPTER = TypeAdapter(dict[str, Any])
_SECTION_ADAPTER = TypeAdapter(dict[str, str])


class VersionStore(Generic[K, V]):
    """Thread-safe key/value store whose entries are only valid for one content version.

    ``load`` returns the cached value when the stored version equals the requested one,
    otherwise it computes, stores and returns a fresh value. Concurrent loads of the same
    key compute once; loads of different keys do not block each other.
    """

    def __init__(self) -> None:
        self._entries: dict[K, tuple[str, V]] = {}
        self._lock = threading.Lock()
        # Per-key compute locks with the number of loads holding or waiting on each.
        self._key_locks: dict[K, tuple[threading.Lock, int]] = {}

    def get(self, key: K, version: str) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is not None and entry[0] == version:
            return entry[1]
        return None

    def store(self, key: K, version: str, value: V) -> None:
        with self._lock:
            self._entries[key] = (version, value)

    def load(
        self,
        key: K,
        version: str,
        compute: Callable[[], V],
        keep: Callable[[V], bool] | None = None,
    ) -> V:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[0] == version:
                return entry[1]
            key_lock, users = self._key_locks.get(key) or (threading.Lock(), 0)
            self._key_locks[key] = (key_lock, users + 1)

        try:
            with key_lock:
                with self._lock:
                    entry = self._entries.get(key)
                if entry is not None and entry[0] == version:
                    return entry[1]
                value = compute()
                if keep is None or keep(value):
                    self.store(key, version, value)
                return value
        finally:
            with self._lock:
                _, users = self._key_locks[key]
                if users == 1:
                    del self._key_locks[key]
                else:
                    self._key_locks[key] = (key_lock, users - 1)

    def invalidate(self, key: K) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def items(self) -> list[tuple[K, V]]:
        with self._lock:
            return [(k, v) for k, (_, v) in self._entries.items()]

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class StringCache(VersionStore[str, str]):
    """Unversioned string cache. Empty results are never stored."""

    def load_string(self, key: str, compute: Callable[[], str]) -> str:
        return self.load(key, "", compute, keep=bool)

    def update(self, values: dict[str, str]) -> None:
        for key, value in values.items():
            self.store(key, "", value)

    def snapshot(self) -> dict[str, str]:
        return dict(self.items())


class Caches:
    """Process-wide caches shared by the extraction pipeline and the module resolver.

    Construct one at process start, pass it down, and ``flush`` it at shutdown.
    """

    def __init__(self) -> None:
        self.units: VersionStore[str, Any] = VersionStore()
        self.decls: VersionStore[tuple[str, str], Any] = VersionStore()
        self.modules: VersionStore[str, str] = VersionStore()

        self.import_name = StringCache()
        self.import_path = StringCache()
        self.import_package_name = StringCache()
        self.import_package_dir = StringCache()
        self.mod_file = StringCache()

        # Sections this version does not know, written back as read.
        self._unknown: dict[str, Any] = {}

    def persisted(self) -> dict[str, StringCache]:
        return {
            "importName": self.import_name,
            "importPath": self.import_path,
            "importPackageName": self.import_package_name,
            "importPackageDir": self.import_package_dir,
            "modFile": self.mod_file,
        }

    def load(self, path: str | Path) -> None:
        """Restore persisted string caches from ``path``. Missing or invalid files are ignored."""
        cache_path = Path(path)
        try:
            raw = cache_path.read_bytes()
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Cannot read cache file %s: %s", cache_path, exc)
            return

        try:
            snapshot = _SNAPSHOT_ADAPTER.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Ignoring invalid cache file %s: %s", cache_path, exc.error_count())
            return

        stores = self.persisted()
        for name, section in snapshot.items():
            store = stores.get(name)
            if store is None:
                self._unknown[name] = section
                continue
            try:
                values = _SECTION_ADAPTER.validate_python(section)
            except ValidationError as exc:
                logger.warning("Ignoring invalid section %s in cache file %s: %s", name, cache_path, exc.error_count())
                continue
            store.update(values)
        logger.debug("Loaded cache file %s (%d sections)", cache_path, len(snapshot))

    def dump(self) -> dict[str, Any]:
        snapshot = dict(self._unknown)
        for name, store in self.persisted().items():
            snapshot[name] = store.snapshot()
        return snapshot

    def flush(self, path: str | Path) -> None:
        """Overwrite ``path`` with the current persisted caches."""
        cache_path = Path(path)
        data = _SNAPSHOT_ADAPTER.dump_json(self.dump())
        tmp_path = cache_path.with_name(f".{cache_path.name}.tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, cache_path)
        logger.debug("Flushed cache file %s", cache_path)
