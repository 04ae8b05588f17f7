import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
APP_LOG_FILE = "tutoring-cli.log"
AUDIT_LOG_FILE = "settlement-audit.log"
AUDIT_LOGGER_NAME = "tutoring_cli.audit"

# Third-party loggers that flood the console at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")


def _level(name: Optional[str], fallback: int = logging.INFO) -> int:
    if not name:
        return fallback
    return LEVEL_MAP.get(name.upper(), fallback)


def _rotating_handler(
    path: Path, level: int, max_bytes: int, backups: int, log_format: str
) -> logging.handlers.RotatingFileHandler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backups, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(log_format))
    return handler


class LoggingConfig:
    """Owns the console and file handlers shared by every tutoring_cli module."""

    def __init__(self, logs_dir: Optional[str] = None):
        self.logs_dir = Path(logs_dir or os.getenv("LOG_DIR", "logs"))
        self._configured = False

    def setup_logging(
        self,
        log_level: str = "INFO",
        console_level: Optional[str] = None,
        file_level: Optional[str] = None,
        max_file_size: int = 10 * 1024 * 1024,  # 10 MB
        backup_count: int = 5,
        log_format: Optional[str] = None,
    ) -> None:
        """
        Attach a console handler and a rotating file handler to the root logger.

        Args:
            log_level: Level used for both outputs unless overridden
            console_level: Level for the console only
            file_level: Level for ``tutoring-cli.log`` only
            max_file_size: Size in bytes at which the log file rotates
            backup_count: Rotated files to keep
            log_format: Format string for both handlers

        Calling it again is a no-op, so every CLI invocation can call it.
        """
        if self._configured:
            return

        base_level = _level(log_level)
        console_log_level = _level(console_level, base_level)
        file_log_level = _level(file_level, base_level)
        log_format = log_format or DEFAULT_FORMAT

        self.logs_dir.mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger()
        root_logger.setLevel(min(console_log_level, file_log_level))
        root_logger.handlers.clear()

        console_handler = logging.StreamHandler()
        console_handler.setLevel(console_log_level)
        console_handler.setFormatter(logging.Formatter(log_format))
        root_logger.addHandler(console_handler)
        root_logger.addHandler(
            _rotating_handler(
                self.logs_dir / APP_LOG_FILE,
                file_log_level,
                max_file_size,
                backup_count,
                log_format,
            )
        )

        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(max(logging.WARNING, base_level))

        self._configured = True
        logging.getLogger(__name__).debug(
            f"Logging to console at {logging.getLevelName(console_log_level)} and to "
            f"{(self.logs_dir / APP_LOG_FILE).absolute()} at {logging.getLevelName(file_log_level)}"
        )

    def get_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)

    def create_specialized_logger(
        self,
        name: str,
        log_file: str,
        level: str = "INFO",
        max_file_size: int = 10 * 1024 * 1024,
        backup_count: int = 5,
        log_format: Optional[str] = None,
    ) -> logging.Logger:
        """
        Logger that also writes to its own file in the logs directory.

        Records still propagate to the root handlers. The file handler is only
        added once per path.
        """
        logger = logging.getLogger(name)
        logger.setLevel(_level(level))

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.logs_dir / log_file

        already_attached = any(
            isinstance(h, logging.handlers.RotatingFileHandler)
            and h.baseFilename == str(log_path.absolute())
            for h in logger.handlers
        )
        if not already_attached:
            logger.addHandler(
                _rotating_handler(
                    log_path,
                    logging.NOTSET,
                    max_file_size,
                    backup_count,
                    log_format or DEFAULT_FORMAT,
                )
            )
        return logger


_logging_config = LoggingConfig()


def setup_logging(**kwargs) -> None:
    _logging_config.setup_logging(**kwargs)


def get_logger(name: str) -> logging.Logger:
    return _logging_config.get_logger(name)


def create_specialized_logger(name: str, log_file: str, **kwargs) -> logging.Logger:
    return _logging_config.create_specialized_logger(name, log_file, **kwargs)


def get_audit_logger() -> logging.Logger:
    """Trail of settlement moderation decisions, kept in ``settlement-audit.log``."""
    return create_specialized_logger(AUDIT_LOGGER_NAME, AUDIT_LOG_FILE)


def configure_from_env() -> None:
    """Read LOG_LEVEL, CONSOLE_LOG_LEVEL and FILE_LOG_LEVEL from the environment."""
    setup_logging(
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        console_level=os.getenv("CONSOLE_LOG_LEVEL"),
        file_level=os.getenv("FILE_LOG_LEVEL"),
    )
