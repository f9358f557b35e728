"""Loguru sinks for the engine process."""

import sys
from pathlib import Path

from loguru import logger

from nanoscout.config.schema import LoggingConfig

# Ids bound with logger.bind(...) that are shown in front of each message.
CONTEXT_KEYS = ("plugin", "provider", "session_id", "message_id")

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> | {extra[context]}<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {extra[context]}{message}"


def _tag_context(record) -> None:
    extra = record["extra"]
    tags = [f"{key}={extra[key]}" for key in CONTEXT_KEYS if extra.get(key)]
    extra["context"] = f"[{' '.join(tags)}] " if tags else ""


def resolve_log_file(config: LoggingConfig, data_dir: Path) -> Path:
    return Path(config.file).expanduser() if config.file else data_dir / "nanoscout.log"


def configure_logging(config: LoggingConfig, data_dir: Path, verbose: bool = False) -> Path:
    """
    Replace loguru's default sink with a console sink and a rotating log file.

    The console follows ``config.level``, or DEBUG when either the flag or
    ``config.verbose`` asks for it. The file always records DEBUG and up.
    Both prefix messages with the plugin, provider, session and message ids
    bound on the logger.

    Returns:
        The log file path.
    """
    verbose = verbose or config.verbose
    console_level = "DEBUG" if verbose else config.level
    log_file = resolve_log_file(config, data_dir)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.configure(extra={"context": ""}, patcher=_tag_context)
    logger.add(sys.stderr, level=console_level, format=CONSOLE_FORMAT, backtrace=verbose, diagnose=False)
    logger.add(
        str(log_file),
        level="DEBUG",
        format=FILE_FORMAT,
        rotation="10 MB",
        retention="1 week",
        compression="zip",
        enqueue=True,
    )

    logger.debug(f"Logging to {log_file} (console {console_level})")
    return log_file
