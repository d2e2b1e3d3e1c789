"""Utility helpers shared across dbmodel."""

from dbmodel.utils.logging import configure_logging, get_logger

__all__ = ("configure_logging", "get_logger")
