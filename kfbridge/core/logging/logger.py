"""
Custom Rich-based logger with account and sender context support.

Provides context-aware logging so every line of a sync run carries the
open_kfid it belongs to.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from kfbridge.core.config.settings import settings


class CompactFormatter(logging.Formatter):
    """Custom formatter that shortens long module names for better readability."""

    def format(self, record):
        if record.name.startswith("kfbridge."):
            # kfbridge.core.sync.sync_engine -> sync.sync_engine
            parts = record.name.split(".")
            if len(parts) > 2:
                if "kf_client" in record.name:
                    record.name = "kf.client"
                elif "token_cache" in record.name:
                    record.name = "kf.token"
                else:
                    record.name = ".".join(parts[-2:])

        return super().format(record)


# Rich theme for colored output
_theme = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "debug": "dim white",
    }
)
_console = Console(theme=_theme)


class ContextLogger:
    """
    Logger wrapper that adds account and sender context to messages.

    Context is added as a message prefix rather than through the format
    string, so third-party log records keep working with the same handler.
    """

    def __init__(
        self,
        logger: logging.Logger,
        account_id: str | None = None,
        sender_id: str | None = None,
    ):
        self.logger = logger
        self.account_id = account_id or "---"
        self.sender_id = sender_id or "---"

    def _format_message(self, message: str) -> str:
        """Add context prefix to message."""
        from .context import get_current_account_context, get_current_sender_context

        current_account = get_current_account_context() or self.account_id
        current_sender = get_current_sender_context() or self.sender_id

        if current_account and current_account != "---":
            if current_sender and current_sender != "---":
                return f"[A:{current_account}][U:{current_sender}] {message}"
            return f"[A:{current_account}] {message}"
        elif current_sender and current_sender != "---":
            return f"[U:{current_sender}] {message}"
        return message

    def debug(self, message: str, *args, **kwargs) -> None:
        self.logger.debug(self._format_message(message), *args, **kwargs)

    def info(self, message: str, *args, **kwargs) -> None:
        self.logger.info(self._format_message(message), *args, **kwargs)

    def warning(self, message: str, *args, **kwargs) -> None:
        self.logger.warning(self._format_message(message), *args, **kwargs)

    def error(self, message: str, *args, **kwargs) -> None:
        self.logger.error(self._format_message(message), *args, **kwargs)

    def critical(self, message: str, *args, **kwargs) -> None:
        self.logger.critical(self._format_message(message), *args, **kwargs)

    def exception(self, message: str, *args, **kwargs) -> None:
        self.logger.exception(self._format_message(message), *args, **kwargs)

    def bind(self, **kwargs) -> ContextLogger:
        """
        Create a new ContextLogger with additional or updated context.

        Args:
            **kwargs: Context fields to bind (account_id, sender_id)

        Returns:
            New ContextLogger instance with updated context

        Example:
            account_logger = logger.bind(account_id="wkAbc123")
        """
        return ContextLogger(
            self.logger,
            account_id=kwargs.get("account_id", self.account_id),
            sender_id=kwargs.get("sender_id", self.sender_id),
        )


def setup_logging(
    *,
    level: str = "INFO",
    mode: str = "PROD",
    log_dir: str | None = None,
    console_fmt: str | None = None,
    file_fmt: str | None = None,
) -> None:
    """
    Initialize the root logger with Rich formatting.

    Parameters
    ----------
    level : str
        Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
    mode : str
        "DEV" creates daily log files + console; anything else → console only
    log_dir : str, optional
        Directory for log files (DEV mode only)
    console_fmt : str, optional
        Console format string
    file_fmt : str, optional
        File format string
    """
    lvl = level.upper()
    lvl = lvl if lvl in ("DEBUG", "INFO", "WARNING", "ERROR") else "INFO"

    # RichHandler already shows level and time, so only module name and message
    console_format = console_fmt or "[%(name)s] %(message)s"
    file_format = file_fmt or "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

    rich_handler = RichHandler(
        console=_console,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
        show_time=True,
        show_level=True,
        markup=False,
    )
    rich_handler.setFormatter(CompactFormatter(console_format))

    handlers: list[logging.Handler] = [rich_handler]

    if mode.upper() == "DEV" and log_dir:
        os.makedirs(log_dir, exist_ok=True)
        logfile = os.path.join(log_dir, f"kfbridge_{datetime.now():%Y%m%d}.log")
        file_handler = logging.FileHandler(logfile, encoding="utf-8")
        file_handler.setFormatter(CompactFormatter(file_format))
        handlers.append(file_handler)
        _console.print(f"[green]DEV mode:[/] console + file → {logfile}")
    else:
        _console.print(f"Logging configured for mode '{mode}'. Console only.")

    logging.basicConfig(level=lvl, handlers=handlers, force=True)

    # aiohttp access logs are noise next to our own request logging
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)

    setup_logger = logging.getLogger("KfBridgeLoggerSetup")
    setup_logger.info(f"Logging initialized ({lvl})")


def setup_app_logging() -> None:
    """
    Initialize application logging for kfbridge.

    Called once during FastAPI application startup.
    """
    setup_logging(
        level=settings.log_level,
        mode="DEV" if settings.is_development else "PROD",
        log_dir=settings.log_dir if settings.is_development else None,
    )


def get_logger(name: str) -> ContextLogger:
    """
    Get a logger that automatically uses sync context variables.

    Args:
        name: Logger name (usually __name__)

    Returns:
        ContextLogger instance with automatic context from context variables
    """
    return ContextLogger(logging.getLogger(name))


def get_app_logger() -> ContextLogger:
    """
    Get application logger for general app events (startup, shutdown, etc.).

    Returns:
        ContextLogger instance with app-level context
    """
    return get_logger("kfbridge.app")


def get_account_logger(name: str, account_id: str) -> ContextLogger:
    """
    Get a logger pinned to one account, for code running outside a sync run.

    Args:
        name: Logger name (usually __name__)
        account_id: open_kfid to prefix

    Returns:
        ContextLogger with account context
    """
    return ContextLogger(logging.getLogger(name), account_id=account_id)
