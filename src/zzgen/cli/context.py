import logging
from dataclasses import dataclass

import typer

from zzgen.config import Settings
from zzgen.core.cache import Caches

logger = logging.getLogger(__name__)


@dataclass
class CliContext:
    settings: Settings
    caches: Caches

    def flush(self) -> None:
        try:
            self.caches.flush(self.settings.cache_file)
        except OSError as exc:
            logger.warning("Cannot write cache file %s: %s", self.settings.cache_file, exc)


def get_context(ctx: typer.Context) -> CliContext:
    state = ctx.find_object(CliContext)
    if state is None:
        raise RuntimeError("CLI context not initialised")
    return state
