"""Process tree snapshot: enumeration, linking and selection."""

import os
import re

import psutil
import structlog
from structlog.typing import BindableLogger

from memsplit.errors import InconsistentTreeError, apply_filter
from memsplit.models import ProcessNode

# Parent pid of processes that have no parent (init, kthreadd).
ROOT_PARENT_PID = 0


def enumerate_processes(
    include_self: bool = False,
    fail_on_noperm: bool = False,
    log: BindableLogger | None = None,
) -> list[ProcessNode]:
    """
    Read pid, parent pid and command line of every live process.

    A failed read for one process is handed to the error filter and never
    stops enumeration of the others. If listing processes fails as a whole
    (e.g. /proc is not mounted) the error propagates.
    """
    log = log if log is not None else structlog.get_logger()
    own_pid = os.getpid()
    nodes: list[ProcessNode] = []

    for proc in psutil.process_iter():
        if proc.pid == own_pid and not include_self:
            continue
        try:
            with proc.oneshot():
                parent_pid = proc.ppid()
                command_line = " ".join(proc.cmdline())
        except (psutil.Error, OSError) as exc:
            apply_filter(exc, fail_on_noperm, proc.pid, log)
            continue

        nodes.append(
            ProcessNode(
                pid=proc.pid,
                parent_pid=parent_pid,
                command_line=command_line,
                handle=proc,
            )
        )

    return nodes


def link_tree(nodes: list[ProcessNode]) -> list[ProcessNode]:
    """
    Fill in ``children`` of every node, in place.

    Pids are unique within one snapshot. A node whose parent is missing from
    the snapshot raises InconsistentTreeError.
    """
    index_by_pid = {node.pid: idx for idx, node in enumerate(nodes)}
    for idx, node in enumerate(nodes):
        if node.parent_pid == ROOT_PARENT_PID:
            continue
        parent_idx = index_by_pid.get(node.parent_pid)
        if parent_idx is None:
            raise InconsistentTreeError(node.pid, node.parent_pid)
        nodes[parent_idx].children.append(idx)
    return nodes


def _mark_subtree(nodes: list[ProcessNode], root_idx: int, selected: set[int]) -> None:
    stack = [root_idx]
    while stack:
        idx = stack.pop()
        if idx in selected:
            continue
        selected.add(idx)
        stack.extend(reversed(nodes[idx].children))


def selected_indices(
    nodes: list[ProcessNode],
    pattern: re.Pattern,
    include_descendants: bool,
) -> set[int]:
    """Indices of nodes matching ``pattern``, plus their descendants if requested."""
    selected: set[int] = set()
    for idx, node in enumerate(nodes):
        if not pattern.search(node.command_line):
            continue
        if include_descendants:
            _mark_subtree(nodes, idx, selected)
        else:
            selected.add(idx)
    return selected


def select_nodes(
    nodes: list[ProcessNode],
    pattern: re.Pattern | str | None,
    include_descendants: bool = False,
) -> list[ProcessNode]:
    """
    Keep the nodes whose command line matches ``pattern``.

    With no pattern every node is kept. With ``include_descendants`` every
    transitive child of a matching node is kept too, whether it matches or
    not. ``nodes`` must already be linked for that. Order is preserved.
    """
    if pattern is None:
        return list(nodes)
    if isinstance(pattern, str):
        pattern = re.compile(pattern)
    selected = selected_indices(nodes, pattern, include_descendants)
    return [node for idx, node in enumerate(nodes) if idx in selected]


def enumerate_and_select(
    pattern: re.Pattern | str | None = None,
    include_descendants: bool = False,
    include_self: bool = False,
    fail_on_noperm: bool = False,
    log: BindableLogger | None = None,
) -> list[ProcessNode]:
    """Take a process snapshot and return the selected nodes."""
    nodes = enumerate_processes(include_self=include_self, fail_on_noperm=fail_on_noperm, log=log)
    if pattern is None:
        return nodes
    link_tree(nodes)
    return select_nodes(nodes, pattern, include_descendants)
