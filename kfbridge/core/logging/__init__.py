"""Logging module for kfbridge."""

from .logger import get_account_logger, get_app_logger, get_logger, setup_app_logging

__all__ = ["get_account_logger", "get_app_logger", "get_logger", "setup_app_logging"]
