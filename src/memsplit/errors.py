"""Error types and the per-process read failure policy."""

from enum import Enum

import psutil
import structlog
from structlog.typing import BindableLogger

from memsplit.models import MappingRecord


class MemsplitError(Exception):
    """Base class for errors raised by memsplit."""


class ConfigError(MemsplitError):
    """Invalid monitor configuration."""


class InconsistentTreeError(MemsplitError):
    """A process names a parent that is not in the snapshot."""

    def __init__(self, pid: int, parent_pid: int) -> None:
        super().__init__(f"pid {parent_pid} (parent of pid {pid}) not found in process snapshot")
        self.pid = pid
        self.parent_pid = parent_pid


class UnaccountedMemoryError(MemsplitError):
    """A mapping holds resident memory that cannot be attributed to any category.

    Reporting a total without it would silently under-report, so the whole
    refresh cycle is aborted instead.
    """

    def __init__(self, reason: str, pid: int, command_line: str, mapping: MappingRecord) -> None:
        super().__init__(
            f"{reason}\n  The process is {pid} {command_line}\n  The map is {mapping.describe()}"
        )
        self.reason = reason
        self.pid = pid
        self.command_line = command_line
        self.mapping = mapping


class SmapsParseError(MemsplitError):
    """A line of /proc/<pid>/smaps could not be parsed."""

    def __init__(self, path: str, lineno: int, line: str) -> None:
        super().__init__(f"{path}:{lineno}: cannot parse smaps line {line!r}")
        self.path = path
        self.lineno = lineno
        self.line = line


class ErrorKind(Enum):
    """Kind of a failed per-process read."""

    PERMISSION_DENIED = "permission_denied"
    VANISHED = "vanished"
    OTHER = "other"


class ErrorAction(Enum):
    """What to do with a failed per-process read."""

    FATAL = "fatal"
    DROP_SILENT = "drop_silent"
    DROP_WARN = "drop_warn"


def error_kind(exc: BaseException) -> ErrorKind:
    """Classify a read failure raised by psutil or by reading /proc directly."""
    if isinstance(exc, (psutil.AccessDenied, PermissionError)):
        return ErrorKind.PERMISSION_DENIED
    # ZombieProcess is a NoSuchProcess
    if isinstance(exc, (psutil.NoSuchProcess, FileNotFoundError, ProcessLookupError)):
        return ErrorKind.VANISHED
    return ErrorKind.OTHER


def decide(exc: BaseException, fail_on_noperm: bool) -> ErrorAction:
    """Decide whether a per-process read failure is fatal or drops the process."""
    kind = error_kind(exc)
    if kind is ErrorKind.PERMISSION_DENIED:
        return ErrorAction.FATAL if fail_on_noperm else ErrorAction.DROP_SILENT
    if kind is ErrorKind.VANISHED:
        return ErrorAction.DROP_WARN
    return ErrorAction.FATAL


def apply_filter(
    exc: BaseException,
    fail_on_noperm: bool,
    pid: int,
    log: BindableLogger | None = None,
) -> None:
    """Log a dropped process, or re-raise ``exc`` if the failure is fatal.

    Must be called from inside the ``except`` block that caught ``exc``.
    """
    log = log if log is not None else structlog.get_logger()
    action = decide(exc, fail_on_noperm)
    if action is ErrorAction.FATAL:
        raise exc
    if action is ErrorAction.DROP_WARN:
        log.warning(
            "process_vanished",
            pid=pid,
            detail="The process may have exited before its details could be read. Ignoring.",
            error=str(exc),
        )
    else:
        log.info("process_permission_denied", pid=pid, error=str(exc))
