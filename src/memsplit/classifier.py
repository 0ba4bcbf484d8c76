"""Classify each process's memory mappings into memory categories."""

import structlog
from structlog.typing import BindableLogger

from memsplit.errors import UnaccountedMemoryError, apply_filter
from memsplit.models import (
    MapPermissions,
    MappingRecord,
    MemoryCategories,
    ProcessListing,
    ProcessNode,
    RegionKind,
)
from memsplit.smaps import read_exe, read_smaps

# Region kinds that are accumulated into a scalar of MemoryCategories.
_SCALAR_FOR_KIND = {
    RegionKind.HEAP: "heap",
    RegionKind.STACK: "stack",
    RegionKind.THREAD_STACK: "thread_stack",
    RegionKind.ANONYMOUS: "anon",
    RegionKind.VDSO: "vdso",
    RegionKind.VVAR: "vvar",
    RegionKind.VSYSCALL: "vsyscall",
    RegionKind.SYSV_SHM: "sysv_shm",
}


def describe_region(mapping: MappingRecord) -> str:
    """Human readable name of a mapping's region, for warnings."""
    kind = mapping.kind
    if kind is RegionKind.PATH:
        return "file-backed map"
    if kind is RegionKind.THREAD_STACK:
        return f"thread {mapping.label} stack"
    if kind is RegionKind.SYSV_SHM:
        return f"shared memory segment (key {mapping.label})"
    if kind is RegionKind.OTHER:
        return f"other path {mapping.label}"
    if kind is RegionKind.ANONYMOUS:
        return "anonymous map"
    return kind.value


def resolve_pss(
    mapping: MappingRecord,
    pid: int,
    command_line: str,
    log: BindableLogger | None = None,
) -> int:
    """
    PSS of one mapping, in bytes.

    Falls back to 0 with a warning when Pss is missing but Rss is 0 or also
    missing. Raises UnaccountedMemoryError when Pss is missing and Rss is not 0.
    """
    log = log if log is not None else structlog.get_logger()
    pss = mapping.fields.get("Pss")
    if pss is not None:
        return pss

    what = describe_region(mapping)
    rss = mapping.fields.get("Rss")
    if rss is None:
        log.warning(
            "pss_missing_assuming_zero",
            detail=f"PSS field not defined on {what}, but neither is RSS. Assuming 0.",
            pid=pid,
            command_line=command_line,
            mapping=mapping.describe(),
        )
        return 0
    if rss == 0:
        log.warning(
            "pss_missing_assuming_zero",
            detail=f"PSS field not defined on {what}, but RSS is defined and is 0. Assuming 0.",
            pid=pid,
            command_line=command_line,
            mapping=mapping.describe(),
        )
        return 0
    raise UnaccountedMemoryError(
        f"PSS field not defined on {what}, and its RSS is not 0.", pid, command_line, mapping
    )


def _skip_unknown_region(
    mapping: MappingRecord, pid: int, command_line: str, log: BindableLogger
) -> None:
    rss = mapping.fields.get("Rss")
    if rss is None:
        detail = "Cannot classify this map, and it doesn't have a RSS field."
    elif rss == 0:
        detail = "Cannot classify this map, but at least its RSS is 0."
    else:
        raise UnaccountedMemoryError(
            "Cannot classify this map, and its RSS is not 0.", pid, command_line, mapping
        )
    log.warning(
        "unclassified_map_skipped",
        detail=detail,
        pid=pid,
        command_line=command_line,
        mapping=mapping.describe(),
    )


def add_mapping(
    categories: MemoryCategories,
    mapping: MappingRecord,
    exe: str,
    pid: int,
    command_line: str,
    log: BindableLogger | None = None,
) -> None:
    """Accumulate one mapping's PSS into ``categories``."""
    log = log if log is not None else structlog.get_logger()
    kind = mapping.kind

    if kind is RegionKind.UNKNOWN:
        _skip_unknown_region(mapping, pid, command_line, log)
        return

    pss = resolve_pss(mapping, pid, command_line, log)

    if kind is RegionKind.PATH:
        key = (mapping.label, mapping.perms)
        categories.by_file_and_permission[key] = categories.by_file_and_permission.get(key, 0) + pss
        is_self = mapping.label == exe
        is_text = bool(mapping.perms & MapPermissions.EXECUTE)
        if is_self:
            bucket = "bin_text" if is_text else "bin_data"
        else:
            bucket = "lib_text" if is_text else "lib_data"
        setattr(categories, bucket, getattr(categories, bucket) + pss)
    elif kind is RegionKind.OTHER:
        labels = categories.by_unrecognized_label
        labels[mapping.label] = labels.get(mapping.label, 0) + pss
    else:
        name = _SCALAR_FOR_KIND[kind]
        setattr(categories, name, getattr(categories, name) + pss)


def classify_mappings(
    mappings: list[MappingRecord],
    exe: str,
    pid: int,
    command_line: str,
    log: BindableLogger | None = None,
) -> MemoryCategories:
    """Aggregate a whole mapping table into memory categories."""
    categories = MemoryCategories()
    for mapping in mappings:
        add_mapping(categories, mapping, exe, pid, command_line, log)
    return categories


def classify_process(
    node: ProcessNode,
    fail_on_noperm: bool = False,
    proc_root: str = "/proc",
    log: BindableLogger | None = None,
) -> ProcessListing | None:
    """
    Build the listing of one process.

    Returns None if the process was dropped by the error filter (it exited,
    or permission was denied and ``fail_on_noperm`` is off).
    """
    log = log if log is not None else structlog.get_logger()
    try:
        mappings = read_smaps(node.pid, proc_root)
    except OSError as exc:
        apply_filter(exc, fail_on_noperm, node.pid, log)
        return None

    try:
        exe = read_exe(node.pid, proc_root)
    except OSError as exc:
        apply_filter(exc, fail_on_noperm, node.pid, log)
        return None

    categories = classify_mappings(mappings, exe, node.pid, node.command_line, log)
    return ProcessListing(
        pid=node.pid,
        parent_pid=node.parent_pid,
        command_line=node.command_line,
        categories=categories,
    )


def classify(
    nodes: list[ProcessNode],
    fail_on_noperm: bool = False,
    proc_root: str = "/proc",
    log: BindableLogger | None = None,
) -> list[ProcessListing]:
    """
    Classify every node, in order.

    Mapping tables and executable links are read from ``proc_root`` on every
    call, so nothing from an earlier snapshot is reused.
    """
    listings: list[ProcessListing] = []
    for node in nodes:
        listing = classify_process(node, fail_on_noperm, proc_root, log)
        if listing is not None:
            listings.append(listing)
    return listings
