"""Central logging configuration for SwitchBack.

Settings come from the ``logging`` section of ``config/local.yml``:
``directory``, ``filename``, ``level`` for the operational log file and
``console_level`` for stderr. stdout is reserved for change reports, so
the console only shows problems unless ``--debug`` is given. If the
configured directory is not writable the log falls back to ``./logs``.

Every record carries a ``device`` and a ``component`` field. Events emitted
through :class:`switchback.core.events.LoggingSink` set both; for other
records the component is the last part of the logger name.
"""

from __future__ import annotations

import logging
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from switchback.core.config import DEFAULT_LOCAL_CONFIG, PROJECT_ROOT, load_local_config

DEFAULT_DIRECTORY = Path("/var/log/switchback")
DEFAULT_FILENAME = "switchback.log"
DEFAULT_LEVEL = logging.INFO
DEFAULT_CONSOLE_LEVEL = logging.WARNING
FALLBACK_DIRECTORY = Path("./logs")

FILE_FORMAT = "%(asctime)s | %(levelname)s | %(component)s | device=%(device)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s %(levelname)-7s [%(component)s] %(device)s: %(message)s"
CONSOLE_DATE_FORMAT = "%H:%M:%S"


@dataclass(slots=True)
class LoggingConfig:
    directory: Path
    filename: str
    level: int
    console_level: int


class EventContextFilter(logging.Filter):
    """Ensure every record has the ``device`` and ``component`` fields."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "device", None):
            record.device = "-"
        if not getattr(record, "component", None):
            record.component = record.name.rsplit(".", 1)[-1]
        return True


class SecretScrubberFilter(logging.Filter):
    """Mask SNMP communities and other secrets in log messages."""

    SECRET_PATTERN = re.compile(r"(community|password|secret)=([^\s]+)", re.IGNORECASE)

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True

        cleaned = self.SECRET_PATTERN.sub(r"\1=***", message)
        if cleaned != message:
            record.msg = cleaned
            record.args = ()
        return True


def _level_from_value(raw_level: Any, default: int) -> int:
    if isinstance(raw_level, str):
        level = logging.getLevelName(raw_level.upper())
        if isinstance(level, int):
            return level
    if isinstance(raw_level, int):
        return raw_level
    return default


def logging_config_from(raw: Mapping[str, Any] | None) -> LoggingConfig:
    """Build a :class:`LoggingConfig` from the parsed local.yml mapping."""

    section = raw.get("logging") if raw else None
    if not isinstance(section, Mapping):
        section = {}

    directory_value = section.get("directory")
    filename_value = section.get("filename")
    return LoggingConfig(
        directory=Path(directory_value).expanduser() if directory_value else DEFAULT_DIRECTORY,
        filename=str(filename_value) if filename_value else DEFAULT_FILENAME,
        level=_level_from_value(section.get("level"), DEFAULT_LEVEL),
        console_level=_level_from_value(section.get("console_level"), DEFAULT_CONSOLE_LEVEL),
    )


def _ensure_writable_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)
    probe = path / ".write-test"
    with probe.open("a", encoding="utf-8"):
        probe.touch()
    probe.unlink(missing_ok=True)


def _determine_log_directory(target: Path, fallback: Path) -> tuple[Path, bool]:
    for index, candidate in enumerate((target, fallback)):
        try:
            _ensure_writable_directory(candidate)
            return candidate, index == 1
        except OSError:
            continue
    raise OSError("Unable to create a writable logging directory.")


def build_handlers(log_path: Path, config: LoggingConfig) -> list[logging.Handler]:
    filters: list[logging.Filter] = [EventContextFilter(), SecretScrubberFilter()]

    file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    file_handler.setLevel(config.level)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATE_FORMAT))

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(config.console_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=CONSOLE_DATE_FORMAT))

    for handler in (file_handler, console_handler):
        for filter_ in filters:
            handler.addFilter(filter_)
    return [file_handler, console_handler]


def setup_logging(
    config_path: str | Path | None = "config/local.yml", cli_level: int | None = None
) -> logging.Logger:
    """Configure application-wide logging.

    Parameters
    ----------
    config_path:
        Optional path to ``local.yml``; relative paths resolve against the
        project root.
    cli_level:
        Level forced from the command line; overrides both configured levels.
    """

    config_file = Path(config_path) if config_path else DEFAULT_LOCAL_CONFIG
    if not config_file.is_absolute():
        config_file = PROJECT_ROOT / config_file
    config = logging_config_from(load_local_config(config_file))
    if cli_level is not None:
        config.level = config.console_level = cli_level

    log_directory, used_fallback = _determine_log_directory(config.directory, FALLBACK_DIRECTORY)
    log_path = log_directory / config.filename

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(min(config.level, config.console_level))
    for handler in build_handlers(log_path, config):
        root_logger.addHandler(handler)

    # pysnmp is chatty at DEBUG
    logging.getLogger("pysnmp").setLevel(max(config.level, logging.INFO))

    logger = logging.getLogger("switchback")
    if not config_file.exists():
        logger.info("local config %s not found, logging with defaults", config_file)
    if used_fallback:
        logger.warning(
            "Logging directory '%s' is not writable. Falling back to '%s'.",
            config.directory,
            log_directory,
        )
    logger.info(
        "Logging initialized at %s level=%s console=%s",
        log_path,
        logging.getLevelName(config.level),
        logging.getLevelName(config.console_level),
    )
    return logger
