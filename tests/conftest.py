"""Shared test fixtures for memsplit."""

import os
from pathlib import Path

import psutil
import pytest
import structlog

from memsplit.models import ProcessNode


class FakeProcess:
    """Stand-in for psutil.Process with scripted answers.

    ``ppid`` or ``cmdline`` may be an exception instance, which is raised when
    the corresponding method is called.
    """

    def __init__(self, pid, ppid=1, cmdline=None):
        self.pid = pid
        self._ppid = ppid
        self._cmdline = cmdline if cmdline is not None else [f"/usr/bin/proc{pid}"]

    def oneshot(self):
        return _NullContext()

    @staticmethod
    def _answer(value):
        if isinstance(value, BaseException):
            raise value
        return value

    def ppid(self):
        return self._answer(self._ppid)

    def cmdline(self):
        return self._answer(self._cmdline)


class _NullContext:
    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


@pytest.fixture
def fake_processes(monkeypatch):
    """Replace psutil.process_iter with a scripted list of FakeProcess."""
    processes: list[FakeProcess] = []
    monkeypatch.setattr(psutil, "process_iter", lambda *args, **kwargs: iter(list(processes)))
    return processes


@pytest.fixture
def proc_root(tmp_path: Path) -> Path:
    """An empty directory standing in for /proc."""
    root = tmp_path / "proc"
    root.mkdir()
    return root


def write_smaps(proc_root: Path, pid: int, text: str) -> Path:
    """Write ``text`` as /proc/<pid>/smaps under ``proc_root``."""
    pid_dir = proc_root / str(pid)
    pid_dir.mkdir(parents=True, exist_ok=True)
    path = pid_dir / "smaps"
    path.write_text(text)
    return path


def write_exe(proc_root: Path, pid: int, target: str) -> Path:
    """Point /proc/<pid>/exe under ``proc_root`` at ``target``, replacing any old link."""
    pid_dir = proc_root / str(pid)
    pid_dir.mkdir(parents=True, exist_ok=True)
    link = pid_dir / "exe"
    if link.is_symlink():
        link.unlink()
    os.symlink(target, link)
    return link


def smaps_entry(
    pathname: str = "",
    perms: str = "rw-p",
    start: int = 0x1000,
    rss_kb: int | None = 8,
    pss_kb: int | None = 4,
    extra: str = "",
) -> str:
    """Render one smaps entry; pass None to leave a field out."""
    lines = [f"{start:08x}-{start + 0x2000:08x} {perms} 00000000 fd:00 1234 {pathname}".rstrip()]
    lines.append("Size:                  8 kB")
    if rss_kb is not None:
        lines.append(f"Rss:            {rss_kb:6d} kB")
    if pss_kb is not None:
        lines.append(f"Pss:            {pss_kb:6d} kB")
    lines.append("Shared_Clean:          0 kB")
    lines.append("THPeligible:    0")
    lines.append("VmFlags: rd wr mr mw me ac")
    if extra:
        lines.append(extra)
    return "\n".join(lines) + "\n"


def make_node(pid, parent_pid=1, command_line=None):
    """A ProcessNode backed by a FakeProcess."""
    command_line = command_line if command_line is not None else f"/usr/bin/proc{pid}"
    return ProcessNode(
        pid=pid,
        parent_pid=parent_pid,
        command_line=command_line,
        handle=FakeProcess(pid, parent_pid, command_line.split()),
    )


@pytest.fixture(autouse=True)
def reset_structlog():
    """Keep structlog configuration from leaking between tests."""
    yield
    structlog.reset_defaults()
