"""Logging setup for the deployer CLI.

Everything logs through the standard library. The CLI maps its -v count or
--log-level to a level, sends records to stderr and optionally to a file,
and keeps SSH and HTTP library chatter out of the way unless TRACE is on.
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

CONSOLE_FORMAT = "%(levelname)s [%(name)s] %(message)s"
DETAILED_FORMAT = "%(asctime)s %(levelname)s [%(name)s:%(lineno)d] %(message)s"

# Below DEBUG: full remote command lines, including injected variables
TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LEVEL_NAMES = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

_VERBOSITY = (logging.WARNING, logging.INFO, logging.DEBUG, TRACE)

LIBRARY_LOGGERS = ("asyncssh", "httpx", "httpcore", "botocore", "aiobotocore", "aioboto3")


def resolve_level(verbose: int = 0, name: str | None = None) -> int:
    """Pick the console level from --log-level or the -v count.

    An explicit level name wins over any number of -v flags.

    Raises:
        ValueError: If the level name is unknown
    """
    if name:
        try:
            return LEVEL_NAMES[name.lower()]
        except KeyError:
            raise ValueError(
                f"Invalid log level: {name}. Valid levels: {', '.join(LEVEL_NAMES)}"
            ) from None
    return _VERBOSITY[min(max(verbose, 0), len(_VERBOSITY) - 1)]


def configure_logging(level: int = logging.WARNING, log_file: str | Path | None = None) -> None:
    """Install the console handler and, optionally, a file handler.

    Calling it again replaces the handlers from the previous call. The log
    file always records at least DEBUG so a failed run can be inspected
    after the fact without rerunning it with -vv.

    Args:
        level: Console level
        log_file: Extra destination, created along with its directory
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(
        logging.Formatter(DETAILED_FORMAT if level <= logging.DEBUG else CONSOLE_FORMAT)
    )
    root.addHandler(console)
    root_level = level

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_level = min(level, logging.DEBUG)
        file_handler = logging.FileHandler(path)
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(DETAILED_FORMAT))
        root.addHandler(file_handler)
        root_level = file_level

    root.setLevel(root_level)

    libraries = logging.DEBUG if level <= TRACE else logging.WARNING
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(libraries)


def _suffix(context: dict[str, Any]) -> str:
    if not context:
        return ""
    return " (" + ", ".join(f"{key}={value}" for key, value in context.items()) + ")"


@contextmanager
def log_performance(
    logger: logging.Logger,
    operation: str,
    level: int = logging.INFO,
    **context: Any,
) -> Generator[None, None, None]:
    """Log how long a block took, and whether it raised.

    Example:
        >>> with log_performance(logger, "Playbook server-info", server="web1"):
        ...     result = await self._execute(target, request, command)
        INFO [deployer.runner] Playbook server-info completed in 2.431s (server=web1)
    """
    start = time.perf_counter()
    try:
        yield
    except BaseException:
        elapsed = time.perf_counter() - start
        logger.log(level, f"{operation} failed after {elapsed:.3f}s{_suffix(context)}")
        raise
    elapsed = time.perf_counter() - start
    logger.log(level, f"{operation} completed in {elapsed:.3f}s{_suffix(context)}")


class StructuredLogger:
    """Logger that appends bound key=value context to every message.

    Example:
        >>> log = get_logger("deployer.cli").bind(server="web1")
        >>> log.info("Gathering facts", playbook="server-info")
        INFO [deployer.cli] Gathering facts (server=web1, playbook=server-info)
    """

    def __init__(self, name: str, **context: Any) -> None:
        self.logger = logging.getLogger(name)
        self.context = context

    def bind(self, **context: Any) -> "StructuredLogger":
        """Return a logger for the same name with extra context."""
        return StructuredLogger(self.logger.name, **{**self.context, **context})

    def log(self, level: int, message: str, **extra: Any) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, message + _suffix({**self.context, **extra}))

    def debug(self, message: str, **extra: Any) -> None:
        self.log(logging.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> None:
        self.log(logging.INFO, message, **extra)

    def warning(self, message: str, **extra: Any) -> None:
        self.log(logging.WARNING, message, **extra)

    def error(self, message: str, **extra: Any) -> None:
        self.log(logging.ERROR, message, **extra)


def get_logger(name: str, **context: Any) -> StructuredLogger:
    return StructuredLogger(name, **context)
