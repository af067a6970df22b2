"""structlog on top of stdlib handlers, with one JSON log file per job.

Every record lands in ``fetcher.log`` (and ``error.log`` from ERROR up). Job
loggers additionally write to ``jobs/<job>.log`` so ``log show --job`` can
follow a single job without grepping the main file.
"""

from __future__ import annotations

import json
import logging
import logging.config
import logging.handlers
import re
from pathlib import Path
from typing import Any, Iterable

import structlog

ROOT_LOGGER = "intelli_fetcher"
JOB_LOGGER_PREFIX = f"{ROOT_LOGGER}.job."
MAIN_LOG = "fetcher.log"
ERROR_LOG = "error.log"
JOBS_SUBDIR = "jobs"

# fetch loops run for days; keep a few rotated files instead of one huge one
_MAX_LOG_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3

_LOGGING_INITIALISED = False
_LOG_DIR: Path | None = None


def _current_log_dir() -> Path:
    if _LOG_DIR is not None:
        return _LOG_DIR
    return Path(__file__).resolve().parents[1] / "logs"


def _rotating(path: Path, level: str) -> dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "filename": str(path),
        "maxBytes": _MAX_LOG_BYTES,
        "backupCount": _BACKUP_COUNT,
        "encoding": "utf-8",
        "formatter": "json",
    }


def _logging_config(directory: Path, level: str) -> dict[str, Any]:
    """The dictConfig for the console plus the two shared log files."""

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
            }
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
            "main_file": _rotating(directory / MAIN_LOG, "INFO"),
            "error_file": _rotating(directory / ERROR_LOG, "ERROR"),
        },
        "loggers": {
            ROOT_LOGGER: {
                "handlers": ["console", "main_file", "error_file"],
                "level": level,
                "propagate": False,
            },
        },
    }


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(verbose: bool = False, log_dir: Path | None = None) -> structlog.BoundLogger:
    """Install handlers on first use and return the application logger.

    Later calls reuse the installed handlers; ``verbose=True`` still lowers the
    console threshold to DEBUG so ``--verbose`` works after a component logged.
    """

    global _LOGGING_INITIALISED, _LOG_DIR
    if not _LOGGING_INITIALISED:
        if log_dir is not None:
            _LOG_DIR = log_dir
        directory = _current_log_dir()
        (directory / JOBS_SUBDIR).mkdir(parents=True, exist_ok=True)
        logging.config.dictConfig(_logging_config(directory, "DEBUG" if verbose else "INFO"))
        _configure_structlog()
        _LOGGING_INITIALISED = True
    elif verbose:
        set_console_level(logging.DEBUG)
    return structlog.get_logger(ROOT_LOGGER)


def set_console_level(level: int) -> None:
    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(min(root.getEffectiveLevel(), level))
    for handler in root.handlers:
        if type(handler) is logging.StreamHandler:
            handler.setLevel(level)


def job_log_path(job_name: str) -> Path:
    """File that receives the records of ``job_name``."""

    stem = re.sub(r"[^A-Za-z0-9._-]+", "_", job_name).strip("._") or "job"
    return _current_log_dir() / JOBS_SUBDIR / f"{stem}.log"


def job_logger(job_name: str, verbose: bool = False) -> structlog.BoundLogger:
    """Logger bound to ``job=job_name`` that also writes to the job's own file."""

    configure_logging(verbose)
    path = job_log_path(job_name)
    path.parent.mkdir(parents=True, exist_ok=True)

    py_logger = logging.getLogger(JOB_LOGGER_PREFIX + job_name)
    target = str(path.absolute())
    attached = any(getattr(handler, "baseFilename", None) == target for handler in py_logger.handlers)
    if not attached:
        handler = logging.handlers.RotatingFileHandler(
            path, maxBytes=_MAX_LOG_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8"
        )
        shared = logging.getLogger(ROOT_LOGGER).handlers
        if shared:
            handler.setFormatter(shared[0].formatter)
        handler.setLevel(logging.INFO)
        py_logger.addHandler(handler)

    return structlog.get_logger(JOB_LOGGER_PREFIX + job_name).bind(job=job_name)


def _line_level(line: str) -> int | None:
    try:
        record = json.loads(line)
    except ValueError:
        return None
    if not isinstance(record, dict):
        return None
    name = str(record.get("levelname") or record.get("level") or "").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else None


def tail_log(path: Path, line_count: int = 100, min_level: int | None = None) -> list[str]:
    """Last ``line_count`` lines of ``path``.

    With ``min_level`` only JSON records at or above that level are kept;
    lines that are not JSON records are dropped in that mode.
    """

    if line_count <= 0 or not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    if min_level is not None:
        lines = [line for line in lines if (_line_level(line) or 0) >= min_level]
    return lines[-line_count:]


def log_dir() -> Path:
    """Directory holding the shared log files and the per-job subdirectory."""

    return _current_log_dir()


def available_job_logs() -> Iterable[Path]:
    jobs_dir = _current_log_dir() / JOBS_SUBDIR
    if not jobs_dir.is_dir():
        return []
    return sorted(jobs_dir.glob("*.log"))


__all__ = [
    "available_job_logs",
    "configure_logging",
    "job_log_path",
    "job_logger",
    "log_dir",
    "set_console_level",
    "tail_log",
]
