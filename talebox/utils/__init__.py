"""Utility modules for Talebox."""

from talebox.utils.logging import (
    get_logger,
    get_log_buffer,
    configure_logging,
    LogLevel,
    LogEntry,
    AppLogger,
    story_logger,
    job_logger,
    audio_logger,
    auth_logger,
    api_logger,
)

__all__ = [
    "get_logger",
    "get_log_buffer",
    "configure_logging",
    "LogLevel",
    "LogEntry",
    "AppLogger",
    "story_logger",
    "job_logger",
    "audio_logger",
    "auth_logger",
    "api_logger",
]
