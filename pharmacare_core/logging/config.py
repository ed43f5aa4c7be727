# =============================================================================
# pharmacare_core/logging/config.py
# Logging Configuration for PharmaCare
# =============================================================================

import logging
import sys
import time
from datetime import date
from pathlib import Path
from typing import Iterable, List, Optional, Union


LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_DIR = Path("logs")

# HTTP transport libraries log every request at INFO
NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "asyncio")


def _resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        return resolved
    return level


def _build_handlers(log_to_file: bool, log_filename: Optional[str], log_dir: Optional[Path]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_to_file:
        target_dir = Path(log_dir) if log_dir else LOG_DIR
        target_dir.mkdir(parents=True, exist_ok=True)
        filename = log_filename or f"pharmacare_{date.today():%Y-%m-%d}.log"
        handlers.append(logging.FileHandler(target_dir / filename, encoding="utf-8"))
    return handlers


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_to_file: bool = True,
    log_filename: Optional[str] = None,
    log_dir: Optional[Path] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Configure the root logger for a till or back-office session.

    Args:
        level: Level as int or name ("DEBUG", "INFO"...)
        log_to_file: Also write a dated file (pharmacare_YYYY-MM-DD.log)
        log_filename: Override the dated file name
        log_dir: Directory for the file (default: ./logs)
        quiet: Loggers capped at WARNING
    """
    logging.basicConfig(
        level=_resolve_level(level),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=_build_handlers(log_to_file, log_filename, log_dir),
        force=True,
    )

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger("pharmacare_core").info("Logging initialized")


def get_logger(name: str) -> logging.Logger:
    """
    Usage:
        from pharmacare_core.logging import get_logger
        logger = get_logger(__name__)
    """
    return logging.getLogger(name)


class LogContext:
    """
    Log the start, end and duration of an operation.

    Usage:
        with LogContext(logger, "Syncing prescriptions") as ctx:
            ...
        ctx.elapsed  # seconds
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.INFO):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.elapsed: Optional[float] = None
        self._started: Optional[float] = None

    def __enter__(self) -> "LogContext":
        self._started = time.monotonic()
        self.logger.log(self.level, f"{self.operation}... started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.elapsed = time.monotonic() - self._started
        if exc_type is not None:
            self.logger.error(
                f"{self.operation}... failed after {self.elapsed:.2f}s: {exc_val}",
                exc_info=(exc_type, exc_val, exc_tb),
            )
        else:
            self.logger.log(self.level, f"{self.operation}... completed ({self.elapsed:.2f}s)")
        return False
