"""
Logging configuration module.

One console stream and one daily log file per process. Every record carries
the id of the fixture run that produced it, so interleaved runs writing to
the same log directory can be told apart.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

# Package logger; module loggers (src.*) propagate to it
ROOT_LOGGER_NAME = "src"

DEFAULT_FILE_PREFIX = "fixturegen"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(run_id)s] %(message)s"

# HHMMSS of the first handler created in this process
_PROCESS_START_TIME: Optional[str] = None


def _process_start_time() -> str:
    global _PROCESS_START_TIME
    if _PROCESS_START_TIME is None:
        _PROCESS_START_TIME = datetime.now().strftime("%H%M%S")
    return _PROCESS_START_TIME


def daily_log_path(log_dir: Union[str, Path], prefix: str, day: str, start: str) -> Path:
    """<log_dir>/<prefix>_<YYYYMMDD>_<START_HHMMSS>.log"""
    return Path(log_dir) / f"{prefix}_{day}_{start}.log"


class RunContextFilter(logging.Filter):
    """Stamps records with a run id ("-" outside a run)."""

    def __init__(self, run_id: Optional[str] = None):
        super().__init__()
        self.run_id = run_id or "-"

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "run_id"):
            record.run_id = self.run_id
        return True


class DailyRotatingFileHandler(logging.FileHandler):
    """
    File handler that switches to a new file when the calendar day changes.

    The start-time part of the name stays fixed for the life of the process.
    """

    def __init__(
        self,
        log_dir: Union[str, Path] = "logs",
        prefix: str = DEFAULT_FILE_PREFIX,
        encoding: str = "utf-8",
    ):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.prefix = prefix
        self._start_hhmmss = _process_start_time()
        self._current_date = self._today()

        super().__init__(self._path_for(self._current_date), mode="a", encoding=encoding)

    @staticmethod
    def _today() -> str:
        return datetime.now().strftime("%Y%m%d")

    def _path_for(self, day: str) -> str:
        return str(daily_log_path(self.log_dir, self.prefix, day, self._start_hhmmss))

    def should_rollover(self) -> bool:
        return self._today() != self._current_date

    def do_rollover(self) -> None:
        """Close the current file and continue in today's file."""
        self.close()
        self._current_date = self._today()
        self.baseFilename = self._path_for(self._current_date)
        self.stream = self._open()

    def emit(self, record: logging.LogRecord) -> None:
        if self.should_rollover():
            self.do_rollover()
        super().emit(record)


def setup_logging(
    log_level: str = "INFO",
    log_dir: Union[str, Path] = "logs",
    run_id: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the package logger with console and daily file output.

    Calling it again replaces (and closes) the previous handlers.

    Args:
        log_level: Logging level name; unknown names fall back to INFO
        log_dir: Directory for daily log files
        run_id: Id stamped on every record (None = "-")

    Returns:
        logging.Logger: Configured package logger
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(numeric_level)
    # Records stop here; the root logger may belong to a host application
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    context = RunContextFilter(run_id)

    handlers = [
        logging.StreamHandler(),
        DailyRotatingFileHandler(log_dir=log_dir, encoding="utf-8"),
    ]
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.setFormatter(formatter)
        handler.addFilter(context)
        logger.addHandler(handler)

    logger.info(f"Logging started - level: {log_level}, log file: {handlers[1].baseFilename}")

    return logger
