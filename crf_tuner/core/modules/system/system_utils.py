"""
System utilities for crf_tuner.

This module provides system-level utilities including:
- External process execution with cancellation
- Temporary file tracking and cleanup
- CPU core discovery for VMAF threading
"""

import atexit
import contextlib
import os
import shlex
import subprocess
import tempfile
import threading
import time
from pathlib import Path
from typing import List, Optional

import psutil

from ....utils.logging import get_logger
from ...errors import OperationCancelled

logger = get_logger("system_utils")

# How often a running external process checks its cancel token
POLL_INTERVAL_SEC = 0.25


class _TempFilesList(list):
    """Ordered registry of temp files pending cleanup; each path is stored once."""

    def __init__(self):
        super().__init__()
        self._membership = set()

    def append(self, item):  # type: ignore[override]
        key = str(item)
        if key not in self._membership:
            self._membership.add(key)
            super().append(key)

    # Provide set-like add used by existing code paths
    def add(self, item):
        self.append(item)

    def discard(self, item):
        key = str(item)
        if key in self._membership:
            self._membership.remove(key)
            super().remove(key)

    def clear(self):  # type: ignore[override]
        self._membership.clear()
        super().clear()

    def __contains__(self, item):
        return str(item) in self._membership


TEMP_FILES = _TempFilesList()


def _cleanup():
    """Remove every registered temp file that still exists."""
    for f in list(TEMP_FILES):
        try:
            if os.path.exists(f):
                os.remove(f)
                logger.cleanup(f"removed {f}")
        except OSError as e:
            logger.warn(f"Could not remove temp file {f}: {e}")
        finally:
            TEMP_FILES.discard(f)


def cleanup_temp_files():
    """Public cleanup entry point (wrapper around _cleanup)."""
    _cleanup()


# Register cleanup on exit
atexit.register(_cleanup)


class CancelToken:
    """Cooperative cancellation signal shared by every external invocation of a run.

    A token is cancelled explicitly with ``cancel()`` or implicitly once its
    optional deadline (seconds from creation) has passed.
    """

    def __init__(self, deadline_sec: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + deadline_sec if deadline_sec else None

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False

    def raise_if_cancelled(self, stage: Optional[str] = None):
        if self.cancelled:
            raise OperationCancelled("operation cancelled", stage=stage)


def _terminate_process_tree(pid: int):
    """Terminate a process and any children it spawned."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    procs = parent.children(recursive=True) + [parent]
    for proc in procs:
        try:
            proc.terminate()
        except psutil.NoSuchProcess:
            pass
    _, alive = psutil.wait_procs(procs, timeout=3)
    for proc in alive:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass


def run_command(cmd: List[str], cancel_token: Optional[CancelToken] = None,
                timeout: Optional[float] = None, capture_output: bool = True,
                text: bool = True, check: bool = False) -> subprocess.CompletedProcess:
    """
    Standardized subprocess command runner with cooperative cancellation.

    Args:
        cmd: Command as list of strings
        cancel_token: Token polled while the process runs; when it is cancelled
            the process tree is terminated and OperationCancelled is raised
        timeout: Optional wall-clock limit in seconds (default: none)
        capture_output: Whether to capture stdout/stderr (default: True)
        text: Whether to use text mode (default: True)
        check: Whether to raise CalledProcessError on non-zero exit (default: False)

    Returns:
        CompletedProcess object
    """
    logger.cmd(" ".join(shlex.quote(c) for c in cmd))
    if cancel_token is not None:
        cancel_token.raise_if_cancelled()

    pipe = subprocess.PIPE if capture_output else subprocess.DEVNULL
    started = time.monotonic()
    with subprocess.Popen(cmd, stdout=pipe, stderr=pipe, text=text) as proc:
        while True:
            try:
                stdout, stderr = proc.communicate(timeout=POLL_INTERVAL_SEC)
                break
            except subprocess.TimeoutExpired:
                if cancel_token is not None and cancel_token.cancelled:
                    _terminate_process_tree(proc.pid)
                    proc.communicate()
                    raise OperationCancelled(f"cancelled while running {cmd[0]}")
                if timeout is not None and time.monotonic() - started > timeout:
                    _terminate_process_tree(proc.pid)
                    proc.communicate()
                    logger.error(f"Command timed out after {timeout}s: {' '.join(cmd[:3])}...")
                    raise subprocess.TimeoutExpired(cmd, timeout)

    # SIGINT reaches the child too, so it may exit before the next poll
    if cancel_token is not None and cancel_token.cancelled:
        raise OperationCancelled(f"cancelled while running {cmd[0]}")

    result =subprocess.CompletedProcess(cmd, proc.returncode, stdout, stderr)
    if check:
        result.check_returncode()
    return result


def stderr_tail(result: subprocess.CompletedProcess, lines: int = 5) -> str:
    """Last few stderr lines of a finished command, for error messages."""
    text = result.stderr or ""
    if isinstance(text, bytes):
        text = text.decode(errors="replace")
    tail = [line for line in text.strip().splitlines() if line.strip()][-lines:]
    return " | ".join(tail) if tail else "no error output"


@contextlib.contextmanager
def temporary_file(suffix: str = ".tmp", prefix: str = "crf_tuner_"):
    """
    Context manager for temporary files with automatic cleanup.

    Ensures temp files are tracked in TEMP_FILES and removed on every exit path.

    Yields:
        Path: Path to the (empty) temporary file
    """
    temp_file = None
    try:
        fd, temp_path = tempfile.mkstemp(suffix=suffix, prefix=prefix)
        os.close(fd)  # Close the file descriptor, keep the path
        temp_file = Path(temp_path)
        TEMP_FILES.add(temp_file)

        yield temp_file

    finally:
        if temp_file is not None:
            try:
                if temp_file.exists():
                    temp_file.unlink()
                    logger.cleanup(f"removed {temp_file}")
            except OSError as e:
                logger.warn(f"Failed to cleanup temp file {temp_file}: {e}")
            finally:
                TEMP_FILES.discard(temp_file)


def vmaf_thread_count(speed: int) -> int:
    """Threads handed to libvmaf: 4 for the slowest speed, otherwise all cores but one."""
    if speed <= 1:
        return 4
    cores = psutil.cpu_count(logical=True) or 2
    return max(1, cores - 1)
