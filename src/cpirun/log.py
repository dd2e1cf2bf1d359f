import logging
from contextlib import contextmanager
from typing import Any, Generator

from rich.console import Console
from rich.logging import RichHandler

from cpirun.config import LOG_PLAIN_ENV, env_flag

FORMAT = "%(message)s"

# when an orchestrator is capturing our stderr through a pipe it does its own
# formatting, so skip the rich markup
_plain_logs = env_flag(LOG_PLAIN_ENV)

if _plain_logs:
    handler = logging.StreamHandler()
else:
    console = Console(width=100, stderr=True)
    handler = RichHandler(console=console)

logging.basicConfig(
    level=logging.INFO,
    format=FORMAT,
    datefmt="[%X]",
    handlers=[handler],
)
log = logging.getLogger("cpirun")


def plugin_logger(method: str, stream: str) -> logging.Logger:
    """Child logger used for text a plugin emits while serving `method`."""
    return log.getChild(f"plugin.{method}.{stream}")


def set_verbosity(verbose: bool = False) -> int:
    """Set the verbosity of the logger to DEBUG if `verbose` is True, else INFO.
    Returns the old log level."""
    old_level = log.getEffectiveLevel()
    if verbose:
        log.setLevel(logging.DEBUG)
    else:
        log.setLevel(logging.INFO)
    return old_level


@contextmanager
def log_verbosity(verbose: bool = False) -> Generator[None, Any, None]:
    """Context manager to temporarily set the verbosity of the logger."""
    old_log_level = set_verbosity(verbose=verbose)
    try:
        yield
    finally:
        log.setLevel(old_log_level)
