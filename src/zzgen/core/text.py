def trim_prefix(value: str, prefix: str) -> tuple[str, bool]:
    """Return ``value`` without ``prefix`` and whether the prefix was present."""
    if value.startswith(prefix):
        return value[len(prefix) :], True
    return value, False


def split_kv(value: str, sep: str) -> tuple[str, str]:
    key, _, val = value.partition(sep)
    return key, val


def split_kv_list(items: list[str], sep: str, into: dict[str, str]) -> dict[str, str]:
    """Split ``key<sep>value`` items into ``into``.

    Empty items are ignored. Values of a repeated key are joined with ``,`` in encounter order.
    """
    for item in items:
        if not item:
            continue
        key, val = split_kv(item, sep)
        if key in into:
            into[key] = f"{into[key]},{val}"
        else:
            into[key] = val
    return into


class KeySet:
    def __init__(self) -> None:
        self._keys: set[str] = set()

    def add(self, keys: list[str]) -> None:
        self._keys.update(keys)

    def keys(self) -> list[str]:
        return sorted(self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __len__(self) -> int:
        return len(self._keys)
