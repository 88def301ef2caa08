import os

from pydantic import BaseModel, Field

DEFAULT_PREFIX = "+zz:"
DEFAULT_CACHE_FILE = ".zzgencache"


def _default_workers() -> int:
    return min(32, (os.cpu_count() or 1) + 4)


class Settings(BaseModel):
    prefix: str = DEFAULT_PREFIX
    cache_file: str = DEFAULT_CACHE_FILE
    workers: int = Field(default_factory=_default_workers, ge=1)
    go_binary: str = "go"
    gofmt_binary: str | None = None
    log_level: str = "WARNING"


def get_settings() -> Settings:
    values: dict[str, str] = {}
    for field, env in (
        ("prefix", "ZZGEN_PREFIX"),
        ("cache_file", "ZZGEN_CACHE_FILE"),
        ("workers", "ZZGEN_WORKERS"),
        ("go_binary", "ZZGEN_GO"),
        ("gofmt_binary", "ZZGEN_GOFMT"),
        ("log_level", "ZZGEN_LOG_LEVEL"),
    ):
        value = os.getenv(env)
        if value:
            values[field] = value
    return Settings.model_validate(values)
