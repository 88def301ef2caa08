class ZzgenError(Exception):
    """Base class for failures surfaced by the engine."""


class ParseError(ZzgenError):
    def __init__(self, path: str, message: str = "malformed Go source") -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class ResolutionError(ZzgenError):
    """A module or package lookup could not be completed."""


class CommandError(ResolutionError):
    def __init__(self, command: list[str], stderr: str, cwd: str | None = None) -> None:
        super().__init__(f"{' '.join(command)} (in {cwd or '.'}):\n{stderr}")
        self.command = command
        self.stderr = stderr
        self.cwd = cwd


class PatchError(ZzgenError):
    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path


class FormatError(PatchError):
    """Rewritten content could not be formatted. ``buffer`` holds the unformatted bytes."""

    def __init__(self, path: str, message: str, buffer: bytes) -> None:
        super().__init__(path, message)
        self.buffer = buffer
