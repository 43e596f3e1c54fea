"""
Centralized logging utilities for crf_tuner

Provides consistent logging patterns with configurable debug levels:
- [INFO] for general information
- [WARN] for warnings
- [ERROR] for errors
- [RESULT] for final results
- [DEBUG] for debug information
- [SEARCH] for CRF search messages
- [SCENE] for scene detection messages
- [SAMPLE] for sample assembly messages
- [VMAF] for VMAF calculation messages
- [ENCODE] for encode messages
- [CLEANUP] for cleanup operations

Usage:
    from crf_tuner.utils.logging import get_logger, set_debug_mode

    set_debug_mode(True)  # Enable debug messages

    logger = get_logger("crf_search")
    logger.info("This is an info message")
    logger.debug("This is a debug message")  # Only shows if debug enabled
    logger.search("CRF search message")
"""

import os
import sys
from enum import Enum
from typing import Optional

from tqdm import tqdm

# Global logging configuration
_DEBUG_ENABLED = os.getenv('DEBUG', '').lower() in ('1', 'true', 'yes')
_QUIET_MODE = False
_LOG_LEVEL = "INFO"


class LogLevel(Enum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3


_LEVELS = {
    "DEBUG": LogLevel.DEBUG,
    "INFO": LogLevel.INFO,
    "WARN": LogLevel.WARN,
    "ERROR": LogLevel.ERROR,
}


def set_debug_mode(enabled: bool):
    """Enable or disable debug mode globally"""
    global _DEBUG_ENABLED
    _DEBUG_ENABLED = enabled


def set_quiet_mode(enabled: bool):
    """Enable or disable quiet mode (suppress INFO and DEBUG messages)"""
    global _QUIET_MODE
    _QUIET_MODE = enabled


def set_log_level(level: str):
    """Set the global log level: DEBUG, INFO, WARN, ERROR"""
    global _LOG_LEVEL
    level = level.upper()
    if level not in _LEVELS:
        raise ValueError(f"Unknown log level: {level}")
    _LOG_LEVEL = level


class Logger:
    """Centralized logger with consistent formatting and configurable output"""

    def __init__(self, module_name: str = ""):
        self.module_name = module_name
        self.prefix = f"[{module_name}] " if module_name else ""

    def _should_log(self, level: LogLevel, quiet_exempt: bool = False) -> bool:
        if _QUIET_MODE and not quiet_exempt and level in (LogLevel.DEBUG, LogLevel.INFO):
            return False
        current_level = _LEVELS.get(_LOG_LEVEL, LogLevel.INFO)
        return level.value >= current_level.value

    def _emit(self, line: str, level: LogLevel):
        # Errors and warnings go to stderr so piped output stays parseable
        stream = sys.stderr if level in (LogLevel.WARN, LogLevel.ERROR) else sys.stdout
        # tqdm.write keeps an active progress bar intact
        tqdm.write(line, file=stream)

    def _log(self, level: str, message: str):
        log_level = _LEVELS[level]
        if not self._should_log(log_level):
            return
        self._emit(f"[{level}] {self.prefix}{message}", log_level)

    def _channel(self, tag: str, message: str, level: LogLevel = LogLevel.INFO,
                 debug_only: bool = False, quiet_exempt: bool = False):
        if debug_only and not _DEBUG_ENABLED:
            return
        if not self._should_log(level, quiet_exempt):
            return
        self._emit(f"[{tag}] {message}", level)

    def debug(self, message: str):
        """Log debug message (only if debug mode enabled)"""
        if _DEBUG_ENABLED:
            self._log("DEBUG", message)

    def info(self, message: str):
        self._log("INFO", message)

    def warn(self, message: str):
        self._log("WARN", message)

    def error(self, message: str):
        self._log("ERROR", message)

    def result(self, message: str):
        """Log result message (shown in quiet mode too)"""
        self._channel("RESULT", f"{self.prefix}{message}", quiet_exempt=True)

    # Domain-specific logging methods
    def search(self, message: str):
        """Log CRF search message"""
        self._channel("SEARCH", message)

    def scene(self, message: str):
        """Log scene detection message"""
        self._channel("SCENE", message)

    def sample(self, message: str):
        """Log sample assembly message"""
        self._channel("SAMPLE", message)

    def vmaf(self, message: str):
        """Log VMAF calculation message"""
        self._channel("VMAF", message)

    def encode(self, message: str):
        """Log encode message"""
        self._channel("ENCODE", message)

    def cmd(self, message: str):
        """Log command execution message"""
        self._channel("CMD", message, LogLevel.DEBUG, debug_only=True)

    def cleanup(self, message: str):
        """Log cleanup operation"""
        self._channel("CLEANUP", message, LogLevel.DEBUG, debug_only=True)


def get_logger(module_name: str = "") -> Logger:
    """Get a logger instance for a module"""
    return Logger(module_name)


def create_progress_bar(total: Optional[int] = None, desc: str = "", unit: str = "it",
                        position: Optional[int] = None, leave: bool = True) -> tqdm:
    """Create a progress bar with consistent styling"""
    return tqdm(total=total, desc=desc, unit=unit, position=position, leave=leave,
                disable=_QUIET_MODE)


def format_duration(seconds: float) -> str:
    """Format duration in seconds to a human-readable string"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        return f"{seconds/60:.1f}m"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h {minutes}m"


def format_size(bytes_size: int) -> str:
    """Format file size in bytes to human-readable string"""
    size = float(bytes_size)
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"


def format_thousands(value: int) -> str:
    """Render an integer with thousands separators (12345 -> '12,345')"""
    return f"{value:,d}"
