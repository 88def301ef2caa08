from collections.abc import Iterable, Iterator
from dataclasses import dataclass

_UNNAMED = ("_", ".")


def assumed_package_name(import_path: str) -> str:
    """Guess the package name of ``import_path`` from its last element.

    Major-version elements (``/v2``) are skipped, a ``go-`` prefix is dropped and the name is
    cut at the first character that cannot appear in an identifier.
    """
    parts = [p for p in import_path.split("/") if p]
    if not parts:
        return ""
    base = parts[-1]
    if len(parts) > 1 and base.startswith("v") and base[1:].isdigit():
        base = parts[-2]
    base = base.removeprefix("go-")
    for i, ch in enumerate(base):
        if not (ch.isalnum() or ch == "_"):
            return base[:i]
    return base


@dataclass
class Import:
    path: str
    name: str = ""

    @property
    def local_name(self) -> str:
        return self.name or assumed_package_name(self.path)

    def spec(self) -> str:
        if self.name:
            return f'{self.name} "{self.path}"'
        return f'"{self.path}"'


class Imports:
    """Mutable import list of one Go file. Only additions are supported."""

    def __init__(self, items: Iterable[Import] = ()) -> None:
        self._items = list(items)

    def __iter__(self) -> Iterator[Import]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Imports({self._items!r})"

    def copy(self) -> "Imports":
        return Imports(Import(i.path, i.name) for i in self._items)

    def paths(self) -> list[str]:
        return [i.path for i in self._items]

    def which(self, name: str) -> str:
        """Return the import path bound to the local package ``name``, or ``""``."""
        for item in self._items:
            if item.name in _UNNAMED:
                continue
            if item.local_name == name:
                return item.path
        return ""

    def add(self, path: str) -> str:
        """Import ``path`` unless already imported and return its local package name.

        A new import whose assumed name is taken gets a numbered alias (``time2``).
        """
        taken: set[str] = set()
        for item in self._items:
            if item.name in _UNNAMED:
                continue
            if item.path == path:
                return item.local_name
            taken.add(item.local_name)

        base = assumed_package_name(path) or "pkg"
        name, n = base, 2
        while name in taken:
            name = f"{base}{n}"
            n += 1

        self._items.append(Import(path=path, name="" if name == base else name))
        return name

    def render(self) -> str:
        if not self._items:
            return ""
        body = "\n".join(f"\t{item.spec()}" for item in sorted(self._items, key=lambda i: (i.path, i.name)))
        return f"import (\n{body}\n)"
