"""
Encore Logging Configuration

Structured logging for the engine:
- structlog on top of the standard logging module
- Rotating log files (everything, and errors only)
- Console output for development
- Quieter levels for chatty third-party libraries
- Per-session context through contextvars
"""

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars

NOISY_LIBRARIES = ["aiohttp.access", "aiohttp.client", "urllib3", "google", "grpc"]


class EncoreLogger:
    """
    Centralized logging configuration for the engine.

    All modules log through ``structlog.get_logger(__name__)``; this class
    decides where those events end up.
    """

    def __init__(
        self,
        log_dir: str = "logs",
        log_level: str = "INFO",
        enable_console: bool = True,
        enable_files: bool = True,
        max_file_size: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5
    ):
        """
        Initialize the logging system.

        Args:
            log_dir: Directory to store log files
            log_level: Default log level
            enable_console: Whether to enable console logging
            enable_files: Whether to write rotating log files
            max_file_size: Maximum size per log file before rotation
            backup_count: Number of backup files to keep
        """
        self.log_dir = Path(log_dir)
        self.log_level = getattr(logging, log_level.upper(), logging.INFO)
        self.enable_console = enable_console
        self.enable_files = enable_files
        self.max_file_size = max_file_size
        self.backup_count = backup_count

        self._setup_logging()

    def _setup_logging(self):
        """Configure the complete logging system."""
        logging.getLogger().handlers.clear()

        self._configure_structlog()

        if self.enable_files:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._setup_file_handlers()

        if self.enable_console:
            self._setup_console_handler()

        self._configure_library_loggers()

        logging.getLogger().setLevel(self.log_level)

    def _configure_structlog(self):
        """Configure structlog for structured logging."""
        shared_processors = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        structlog.configure(
            processors=shared_processors + [
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

    def _setup_file_handlers(self):
        """Setup rotating file handlers for the main and error logs."""
        root_logger = logging.getLogger()
        root_logger.addHandler(self._create_rotating_file_handler("encore.log", self.log_level))
        root_logger.addHandler(self._create_rotating_file_handler("errors.log", logging.ERROR))

    def _create_rotating_file_handler(
        self,
        filename: str,
        level: int
    ) -> logging.handlers.RotatingFileHandler:
        """Create a rotating file handler with plain key/value formatting."""
        handler = logging.handlers.RotatingFileHandler(
            filename=self.log_dir / filename,
            maxBytes=self.max_file_size,
            backupCount=self.backup_count,
            encoding='utf-8'
        )
        handler.setLevel(level)
        handler.setFormatter(structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=False),
        ))
        return handler

    def _setup_console_handler(self):
        """Setup console handler for development."""
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=True),
        ))
        logging.getLogger().addHandler(console_handler)

    def _configure_library_loggers(self):
        """Keep HTTP and SDK libraries at WARNING unless debugging."""
        for module in NOISY_LIBRARIES:
            logging.getLogger(module).setLevel(logging.WARNING)

    def get_logger(self, name: str) -> structlog.stdlib.BoundLogger:
        """Get a structured logger for a specific component."""
        return structlog.get_logger(name)

    def set_session_context(self, session_id: str, requester_id: Optional[str] = None):
        """Bind the playback session (and requester) to every following log event."""
        clear_contextvars()
        bind_contextvars(session_id=session_id, requester_id=requester_id)

    def log_performance(self, operation: str, duration: float, **kwargs):
        """Log performance metrics."""
        self.get_logger("performance").info(
            "performance_metric",
            operation=operation,
            duration_seconds=round(duration, 3),
            **kwargs
        )


# Global logger instance
_logger_instance: Optional[EncoreLogger] = None


def setup_logging(
    log_dir: str = "logs",
    log_level: str = "INFO",
    enable_console: bool = True,
    **kwargs
) -> EncoreLogger:
    """
    Setup the global logging configuration.

    Args:
        log_dir: Directory to store log files
        log_level: Default log level
        enable_console: Whether to enable console logging
        **kwargs: Additional arguments for EncoreLogger

    Returns:
        Configured logger instance
    """
    global _logger_instance

    _logger_instance = EncoreLogger(
        log_dir=log_dir,
        log_level=log_level,
        enable_console=enable_console,
        **kwargs
    )
    return _logger_instance


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a logger for a specific component.

    Args:
        name: Component name

    Returns:
        Structured logger instance

    Raises:
        RuntimeError: If logging hasn't been setup
    """
    if _logger_instance is None:
        raise RuntimeError("Logging not setup. Call setup_logging() first.")

    return _logger_instance.get_logger(name)


def log_performance(operation: str, duration: float, **kwargs):
    """Log performance metrics."""
    if _logger_instance:
        _logger_instance.log_performance(operation, duration, **kwargs)


def set_session_context(session_id: str, requester_id: Optional[str] = None):
    """Bind session context for the current task."""
    if _logger_instance:
        _logger_instance.set_session_context(session_id, requester_id)
