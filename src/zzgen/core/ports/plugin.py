from typing import Protocol

from zzgen.core.entity import DeclEntities


class Plugin(Protocol):
    name: str
    description: str

    def args(self) -> tuple[list[str], dict[str, str]]: ...

    def run(self, entities: DeclEntities) -> None: ...
