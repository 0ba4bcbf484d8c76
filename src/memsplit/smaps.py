"""Parser for /proc/<pid>/smaps.

Each mapping is a header line followed by item lines::

    00400000-004b8000 r-xp 00000000 fd:00 11143998     /usr/bin/inetrep
    Size:                736 kB
    Rss:                 592 kB
    Pss:                  87 kB
    ...
    VmFlags: rd ex mr mw me dw

Item values in kB are converted to bytes. Unit-less integer items
(THPeligible, ProtectionKey) are kept as-is and non-numeric items (VmFlags)
are dropped.
"""

import os
import re
from collections.abc import Iterable

from memsplit.errors import SmapsParseError
from memsplit.models import MapPermissions, MappingRecord, RegionKind

HEADER_PATTERN = re.compile(
    r"^([0-9a-f]+)-([0-9a-f]+)"  # 00400000-004b8000
    r"\s+(\S{4})"  # r-xp
    r"\s+([0-9a-f]+)"  # 00000000
    r"\s+([0-9a-f]+:[0-9a-f]+)"  # fd:00
    r"\s+(\d+)"  # 11143998
    r"(?:\s+(.*))?$",  # /usr/bin/inetrep
    re.IGNORECASE,
)
ITEM_PATTERN = re.compile(r"^(\w+):\s*(.*)$")
KB_VALUE_PATTERN = re.compile(r"^(\d+)\s+kB$", re.IGNORECASE)

_SPECIAL_REGIONS = {
    "[heap]": RegionKind.HEAP,
    "[stack]": RegionKind.STACK,
    "[vdso]": RegionKind.VDSO,
    "[vvar]": RegionKind.VVAR,
    "[vsyscall]": RegionKind.VSYSCALL,
}


def parse_region(pathname: str) -> tuple[RegionKind, str]:
    """Return the region kind and label for a smaps pathname column."""
    path = pathname.strip()
    if not path:
        return RegionKind.ANONYMOUS, ""
    if path in _SPECIAL_REGIONS:
        return _SPECIAL_REGIONS[path], ""
    if path.startswith("[stack:") and path.endswith("]"):
        tid = path[len("[stack:") : -1]
        if tid.isdigit():
            return RegionKind.THREAD_STACK, tid
        return RegionKind.UNKNOWN, path
    if path == "[rollup]":
        return RegionKind.UNKNOWN, path
    if path.startswith("[") and path.endswith("]"):
        return RegionKind.OTHER, path[1:-1]
    if path.startswith("/SYSV"):
        key = path[5:13]
        if len(key) == 8 and all(c in "0123456789abcdefABCDEF" for c in key):
            return RegionKind.SYSV_SHM, key.lower()
        return RegionKind.UNKNOWN, path
    return RegionKind.PATH, path


def _parse_header(match: re.Match) -> dict:
    start, end, perms, offset, device, inode, pathname = match.groups()
    pathname = pathname or ""
    kind, label = parse_region(pathname)
    return {
        "start": int(start, 16),
        "end": int(end, 16),
        "perms": MapPermissions.from_string(perms),
        "offset": int(offset, 16),
        "device": device,
        "inode": int(inode),
        "pathname": pathname.strip(),
        "kind": kind,
        "label": label,
    }


def parse_smaps(lines: Iterable[str], source: str = "<smaps>") -> list[MappingRecord]:
    """Parse smaps text into mapping records, in file order."""
    records: list[MappingRecord] = []
    header: dict | None = None
    items: dict[str, int] = {}

    for lineno, raw in enumerate(lines, start=1):
        line = raw.rstrip("\n")
        if not line.strip():
            continue
        match = HEADER_PATTERN.match(line)
        if match:
            if header is not None:
                records.append(MappingRecord(**header, fields=items))
            try:
                header = _parse_header(match)
            except ValueError:
                raise SmapsParseError(source, lineno, line) from None
            items = {}
            continue

        item = ITEM_PATTERN.match(line)
        if item is None or header is None:
            raise SmapsParseError(source, lineno, line)
        key, value = item.group(1), item.group(2).strip()
        kb = KB_VALUE_PATTERN.match(value)
        if kb:
            items[key] = int(kb.group(1)) * 1024
        elif value.isdigit():
            items[key] = int(value)

    if header is not None:
        records.append(MappingRecord(**header, fields=items))
    return records


def read_smaps(pid: int, proc_root: str = "/proc") -> list[MappingRecord]:
    """Read and parse the mapping table of ``pid``.

    Raises whatever ``open`` raises (FileNotFoundError when the process is
    gone, PermissionError when it is not ours).
    """
    path = os.path.join(proc_root, str(pid), "smaps")
    with open(path, encoding="utf-8", errors="surrogateescape") as fh:
        return parse_smaps(fh, source=path)


def read_exe(pid: int, proc_root: str = "/proc") -> str:
    """Target of the ``exe`` link of ``pid``, exactly as the kernel reports it.

    The target keeps its `` (deleted)`` suffix when the binary was removed
    from disk, matching the pathname column of smaps. Kernel threads have no
    executable and yield an empty string.
    """
    pid_dir = os.path.join(proc_root, str(pid))
    try:
        return os.readlink(os.path.join(pid_dir, "exe"))
    except FileNotFoundError:
        if os.path.isdir(pid_dir):
            return ""
        raise
