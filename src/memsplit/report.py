"""Plain-text rendering of process listings."""

from rich.table import Table

from memsplit.models import SCALAR_CATEGORIES, MemoryCategories, ProcessListing

# Column headers for the scalar categories, in SCALAR_CATEGORIES order.
CATEGORY_HEADERS = {
    "stack": "STACK",
    "heap": "HEAP",
    "thread_stack": "TSTACK",
    "bin_text": "BIN_TEXT",
    "lib_text": "LIB_TEXT",
    "bin_data": "BIN_DATA",
    "lib_data": "LIB_DATA",
    "anon": "ANON",
    "vdso": "VDSO",
    "vvar": "VVAR",
    "vsyscall": "VSYSCALL",
    "sysv_shm": "SYSV",
}


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def category_cells(categories: MemoryCategories, raw: bool = False) -> list[str]:
    """Cells for every scalar category, then OTHER and TOTAL."""
    values = [getattr(categories, name) for name in SCALAR_CATEGORIES]
    values += [categories.other, categories.total]
    if raw:
        return [str(value) for value in values]
    return [format_bytes(value) for value in values]


def build_table(listings: list[ProcessListing], raw: bool = False) -> Table:
    """Build a rich Table with one row per process and a totals row."""
    table = Table(box=None, header_style="bold", show_footer=False)
    table.add_column("PID", justify="right")
    table.add_column("PPID", justify="right")
    for name in SCALAR_CATEGORIES:
        table.add_column(CATEGORY_HEADERS[name], justify="right")
    table.add_column("OTHER", justify="right")
    table.add_column("TOTAL", justify="right")
    table.add_column("CMD", overflow="ellipsis", no_wrap=True)

    for listing in listings:
        table.add_row(
            str(listing.pid),
            str(listing.parent_pid),
            *category_cells(listing.categories, raw),
            listing.command_line,
        )

    if listings:
        totals = sum((listing.categories for listing in listings), MemoryCategories())
        table.add_section()
        table.add_row("", "", *category_cells(totals, raw), f"{len(listings)} processes", style="bold")
    return table
