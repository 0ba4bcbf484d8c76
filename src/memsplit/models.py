"""Data models for memsplit."""

from dataclasses import dataclass, field
from enum import Enum, Flag, auto
from typing import Any

# Scalar categories of MemoryCategories, in display order.
SCALAR_CATEGORIES = (
    "stack",
    "heap",
    "thread_stack",
    "bin_text",
    "lib_text",
    "bin_data",
    "lib_data",
    "anon",
    "vdso",
    "vvar",
    "vsyscall",
    "sysv_shm",
)


class MapPermissions(Flag):
    """Permission set of a memory mapping, as shown in the kernel's 'r-xp' field."""

    NONE = 0
    READ = auto()
    WRITE = auto()
    EXECUTE = auto()
    SHARED = auto()
    PRIVATE = auto()

    @classmethod
    def from_string(cls, perms: str) -> "MapPermissions":
        """Parse a 4-character permission field such as 'rw-p'."""
        if len(perms) != 4:
            raise ValueError(f"invalid permission field: {perms!r}")
        result = cls.NONE
        for char, expected, flag in zip(perms, "rwx", (cls.READ, cls.WRITE, cls.EXECUTE)):
            if char == expected:
                result |= flag
            elif char != "-":
                raise ValueError(f"invalid permission field: {perms!r}")
        if perms[3] == "s":
            result |= cls.SHARED
        elif perms[3] == "p":
            result |= cls.PRIVATE
        elif perms[3] != "-":
            raise ValueError(f"invalid permission field: {perms!r}")
        return result

    def to_string(self) -> str:
        """Render back to the kernel's 4-character form."""
        return (
            ("r" if self & MapPermissions.READ else "-")
            + ("w" if self & MapPermissions.WRITE else "-")
            + ("x" if self & MapPermissions.EXECUTE else "-")
            + ("s" if self & MapPermissions.SHARED else "p" if self & MapPermissions.PRIVATE else "-")
        )


class RegionKind(Enum):
    """What backs a memory mapping."""

    PATH = "path"
    HEAP = "heap"
    STACK = "stack"
    THREAD_STACK = "thread_stack"
    ANONYMOUS = "anonymous"
    VDSO = "vdso"
    VVAR = "vvar"
    VSYSCALL = "vsyscall"
    SYSV_SHM = "sysv_shm"
    OTHER = "other"
    UNKNOWN = "unknown"


@dataclass(slots=True, frozen=True)
class MappingRecord:
    """One entry of a process's smaps table.

    ``label`` depends on ``kind``: the file path for PATH, the bracketed name
    for OTHER, the thread id for THREAD_STACK, the hex key for SYSV_SHM and the
    raw pathname for UNKNOWN. Values in ``fields`` are in bytes.
    """

    start: int
    end: int
    perms: MapPermissions
    offset: int
    device: str
    inode: int
    pathname: str
    kind: RegionKind
    label: str = ""
    fields: dict[str, int] = field(default_factory=dict)

    def describe(self) -> str:
        """Short one-line description used in diagnostics."""
        return (
            f"{self.start:x}-{self.end:x} {self.perms.to_string()} "
            f"{self.offset:08x} {self.device} {self.inode} {self.pathname}".rstrip()
        )


@dataclass(slots=True)
class ProcessNode:
    """A live process in one snapshot of the process tree.

    ``children`` holds indices into the snapshot's node list, so it is only
    meaningful together with the list it was linked in.
    """

    pid: int
    parent_pid: int
    command_line: str
    handle: Any  # psutil.Process
    children: list[int] = field(default_factory=list)


def _add_maps(lhs: dict, rhs: dict) -> dict:
    result = dict(lhs)
    for key, value in rhs.items():
        result[key] = result.get(key, 0) + value
    return result


@dataclass(slots=True)
class MemoryCategories:
    """Per-process PSS totals in bytes, split by memory category."""

    stack: int = 0
    heap: int = 0
    thread_stack: int = 0
    bin_text: int = 0
    bin_data: int = 0
    lib_text: int = 0
    lib_data: int = 0
    anon: int = 0
    vdso: int = 0
    vvar: int = 0
    vsyscall: int = 0
    sysv_shm: int = 0
    by_file_and_permission: dict[tuple[str, MapPermissions], int] = field(default_factory=dict)
    by_unrecognized_label: dict[str, int] = field(default_factory=dict)

    def __add__(self, other: "MemoryCategories") -> "MemoryCategories":
        if not isinstance(other, MemoryCategories):
            return NotImplemented
        scalars = {name: getattr(self, name) + getattr(other, name) for name in SCALAR_CATEGORIES}
        return MemoryCategories(
            **scalars,
            by_file_and_permission=_add_maps(
                self.by_file_and_permission, other.by_file_and_permission
            ),
            by_unrecognized_label=_add_maps(self.by_unrecognized_label, other.by_unrecognized_label),
        )

    def __radd__(self, other: Any) -> "MemoryCategories":
        # Lets sum() start from its default 0.
        if other == 0:
            return self + MemoryCategories()
        return NotImplemented

    @property
    def other(self) -> int:
        """PSS of all named regions without a dedicated category."""
        return sum(self.by_unrecognized_label.values())

    @property
    def file_backed(self) -> int:
        """PSS of all file-backed mappings (same memory as the bin/lib buckets)."""
        return sum(self.by_file_and_permission.values())

    @property
    def total(self) -> int:
        """Total classified PSS.

        The file map is another view of the bin/lib buckets, so it is not
        counted twice.
        """
        return sum(getattr(self, name) for name in SCALAR_CATEGORIES) + self.other

    def scalars(self) -> dict[str, int]:
        """Scalar categories as a dict, in display order."""
        return {name: getattr(self, name) for name in SCALAR_CATEGORIES}


@dataclass(slots=True, frozen=True)
class ProcessListing:
    """Memory composition of one process for one refresh cycle."""

    pid: int
    parent_pid: int
    command_line: str
    categories: MemoryCategories

