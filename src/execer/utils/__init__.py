"""Utility helpers shared across execer."""

from ._logging import LogFormatType, create_logger

__all__ = ["LogFormatType", "create_logger"]
