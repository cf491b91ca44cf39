"""
Logging and Console Utilities.

Diagnostics of the checker are emitted through the standard ``logging`` library
and rendered by ``rich``. The console behind the handler is held by a proxy so
that callers (tests, editor integrations) can redirect output to a capture
buffer with ``set_console`` without re-importing anything.

Attributes:
    console (_ConsoleProxy): Stable reference to the active Rich Console.
    logger (logging.Logger): The package logger every module logs through.
"""

import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

LOGGER_NAME = "exhaustive_deps"

_THEME = Theme(
  {
    "info": "dim cyan",
    "warning": "yellow",
    "error": "bold red",
    "path": "bold blue",
    "code": "bold magenta",
  }
)

logger = logging.getLogger(LOGGER_NAME)


class _ConsoleProxy:
  """
  Forwards printing to a swappable ``rich.console.Console`` backend.

  Swapping the backend also rebinds the package logger's ``RichHandler`` so
  ``logging`` output follows the console.
  """

  def __init__(self) -> None:
    self._backend: Console = Console(theme=_THEME)
    self._configure_logging()

  @property
  def backend(self) -> Console:
    return self._backend

  def set_backend(self, new_console: Console) -> None:
    """
    Injects a new Console backend and updates the logging handler.

    Args:
        new_console (Console): The Rich Console to write to.
    """
    self._backend = new_console
    self._configure_logging()

  def reset(self) -> None:
    self._backend = Console(theme=_THEME)
    self._configure_logging()

  def _configure_logging(self) -> None:
    for handler in list(logger.handlers):
      if isinstance(handler, RichHandler):
        logger.removeHandler(handler)

    handler = RichHandler(
      console=self._backend,
      show_time=False,
      omit_repeated_times=False,
      show_path=False,
      markup=True,
      rich_tracebacks=True,
    )
    if logger.level == logging.NOTSET:
      logger.setLevel(logging.INFO)
    logger.addHandler(handler)

  def print(self, *args: Any, **kwargs: Any) -> None:
    self._backend.print(*args, **kwargs)

  def export_text(self, **kwargs: Any) -> str:
    """
    Returns captured output of a recording console.

    Args:
        **kwargs: Options passed to ``Console.export_text``.

    Returns:
        str: The captured text.
    """
    return self._backend.export_text(**kwargs)

  def __getattr__(self, name: str) -> Any:
    return getattr(self._backend, name)


console = _ConsoleProxy()


def set_console(new_console: Console) -> None:
  """
  Redirects console and log output to ``new_console``.

  Args:
      new_console (Console): The configured Rich console to use.
  """
  console.set_backend(new_console)


def reset_console() -> None:
  """Restores output to standard output."""
  console.reset()


def get_console() -> Console:
  return console.backend


def set_verbosity(level: int) -> None:
  """
  Sets the package log level (e.g. ``logging.DEBUG`` to trace analysis states).

  Args:
      level (int): A standard ``logging`` level.
  """
  logger.setLevel(level)


def log_debug(msg: str) -> None:
  logger.debug(msg, extra={"markup": True})


def log_info(msg: str) -> None:
  """
  Logs an informational message.

  Args:
      msg (str): The message content. Can include rich markup like [bold].
  """
  logger.info(f"ℹ️  {msg}", extra={"markup": True})


def log_warning(msg: str) -> None:
  """
  Logs a warning message.

  Args:
      msg (str): The message content.
  """
  logger.warning(f"⚠️  {msg}", extra={"markup": True})
