"""Logging infrastructure for the AgriChain launcher."""

import logging
import logging.handlers
import sys
from pathlib import Path

from .config import DevctlConfig


class ColoredFormatter(logging.Formatter):
    """Colored formatter for CLI output."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"

    def __init__(self, use_colors: bool = True):
        super().__init__()
        self.use_colors = (
            use_colors and hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
        )

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors if enabled."""
        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            formatter = logging.Formatter(
                f"{color}{self.BOLD}%(levelname)-8s{self.RESET} "
                f"{color}%(asctime)s{self.RESET} "
                f"[%(name)s] %(message)s",
                datefmt="%H:%M:%S",
            )
        else:
            formatter = logging.Formatter(
                "%(levelname)-8s %(asctime)s [%(name)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )

        return formatter.format(record)


class CLILogger:
    """Centralized logging for launcher runs."""

    LOG_DIR = Path.home() / ".agrichain" / "logs"

    def __init__(self, config: DevctlConfig):
        self.config = config
        self._file_handler: logging.handlers.RotatingFileHandler | None = None
        self._console_handler: logging.StreamHandler | None = None
        self._setup_logging()

    def _setup_logging(self) -> None:
        """Setup logging configuration."""
        level = getattr(logging, self.config.log_level.upper())
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG if self.config.debug_mode else level)
        root_logger.handlers.clear()

        self._console_handler = logging.StreamHandler(sys.stderr)
        self._console_handler.setLevel(level)
        self._console_handler.setFormatter(ColoredFormatter(use_colors=True))
        root_logger.addHandler(self._console_handler)

        if self.config.debug_mode:
            self._setup_file_handler()

    def _setup_file_handler(self) -> None:
        """Setup file logging handler for debug mode."""
        try:
            self.LOG_DIR.mkdir(parents=True, exist_ok=True)

            self._file_handler = logging.handlers.RotatingFileHandler(
                self.LOG_DIR / "devctl.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
            )
            self._file_handler.setLevel(logging.DEBUG)
            self._file_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                    datefmt="%Y-%m-%d %H:%M:%S",
                )
            )
            logging.getLogger().addHandler(self._file_handler)

        except OSError as e:
            # Don't fail startup for logging issues
            logging.getLogger("cli.logging").warning(
                f"Failed to setup file logging: {e}"
            )

    def get_log_file_path(self) -> Path | None:
        """Get the current log file path."""
        if self._file_handler:
            return Path(self._file_handler.baseFilename)
        return None

    def shutdown(self) -> None:
        """Flush and detach all handlers."""
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            handler.flush()
            root_logger.removeHandler(handler)

        if self._file_handler:
            self._file_handler.close()


# Global logger instance
_cli_logger: CLILogger | None = None


def get_cli_logger() -> CLILogger | None:
    """Get the global CLI logger instance."""
    return _cli_logger


def init_cli_logging(config: DevctlConfig) -> CLILogger:
    """Initialize CLI logging with configuration."""
    global _cli_logger

    if _cli_logger:
        _cli_logger.shutdown()

    _cli_logger = CLILogger(config)
    return _cli_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (convenience function)."""
    return logging.getLogger(name)


__all__ = [
    "ColoredFormatter",
    "CLILogger",
    "init_cli_logging",
    "get_cli_logger",
    "get_logger",
]
