from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

from loguru import logger
from rich.console import Console

# Shared so log lines print above rich tables instead of tearing them.
console = Console(stderr=True)

_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{line} [{extra[component]}] {extra[image]} - {message}"
)
_CONSOLE_FORMAT = "{time:HH:mm:ss} | {level: >8} | [{extra[component]}] {extra[image]} - {message}"


class InterceptHandler(logging.Handler):
    """Route stdlib logging records (tifffile, etc.) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - simple bridge
        try:
            level: Any = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = sys._getframe(6), 6
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_cli_logging(
    output_dir: Path | None,
    component: str,
    *,
    console_level: str = "INFO",
    file_level: str = "INFO",
    extra: dict[str, str] | None = None,
) -> Path | None:
    """Replace loguru sinks for one CLI command.

    Console lines go through the shared rich console. With ``output_dir``,
    records at ``file_level`` or above are also kept in
    ``<output_dir>/logs/<component>.log``.
    """
    logger.remove()
    logger.configure(extra={"image": "", "component": component, **(extra or {})})
    logger.add(
        lambda message: console.print(message, end="", markup=False, highlight=False),
        level=console_level,
        format=_CONSOLE_FORMAT,
        backtrace=False,
        diagnose=False,
    )
    logging.basicConfig(handlers=[InterceptHandler()], level=logging.WARNING, force=True)

    if output_dir is None:
        return None

    log_file = output_dir / "logs" / f"{component}.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(log_file, level=file_level, format=_FILE_FORMAT, rotation="20 MB", backtrace=False, diagnose=False)
    return log_file
