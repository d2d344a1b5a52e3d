"""Logging configuration using Loguru.

Two kinds of records are produced:
- ordinary module logs, obtained through get_logger()
- audit records for lifecycle transitions (trash, restore, purge), obtained
  through get_audit_logger() and routed to their own JSON file sink
"""

import sys
from pathlib import Path

from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def _is_audit(record) -> bool:
    return record["extra"].get("audit", False)


def setup_logging(
    level: str = "INFO",
    log_to_file: bool = True,
    log_dir: str = "logs",
    file_rotation: str = "10 MB",
    file_retention: str = "7 days",
    compression: str = "zip",
    serialize: bool = True,
) -> None:
    """Configure Loguru with a console sink and rotating JSON file sinks."""
    logger.remove()

    logger.add(
        sys.stderr,
        level=level,
        format=CONSOLE_FORMAT,
        colorize=True,
        serialize=False,
    )

    if not log_to_file:
        return

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_path / "fieldvault_{time:YYYY-MM-DD}.log",
        level=level,
        format=FILE_FORMAT,
        rotation=file_rotation,
        retention=file_retention,
        compression=compression,
        serialize=serialize,
        enqueue=True,
        filter=lambda record: not _is_audit(record),
    )

    # Audit trail is always serialized so it can be replayed
    logger.add(
        log_path / "fieldvault_audit_{time:YYYY-MM-DD}.log",
        level="INFO",
        format=FILE_FORMAT,
        rotation=file_rotation,
        retention=file_retention,
        compression=compression,
        serialize=True,
        enqueue=True,
        filter=_is_audit,
    )


def get_logger(name: str):
    """Get a logger instance for a module."""
    return logger.bind(module=name)


def get_audit_logger(name: str):
    """Get a logger whose records go to the audit sink."""
    return logger.bind(module=name, audit=True)
