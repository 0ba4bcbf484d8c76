"""memsplit - Textual application."""

from enum import Enum
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static

from memsplit.config import MonitorConfig
from memsplit.models import SCALAR_CATEGORIES, MemoryCategories, ProcessListing
from memsplit.monitor import MemoryMonitor, MemorySnapshot
from memsplit.report import CATEGORY_HEADERS, format_bytes


class SortKey(Enum):
    """Sort keys for the process table."""

    TOTAL = "total"
    HEAP = "heap"
    STACK = "stack"
    PID = "pid"


class TotalsHeader(Static):
    """Header widget showing the category totals over all listed processes."""

    DEFAULT_CSS = """
    TotalsHeader {
        height: auto;
        min-height: 3;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize TotalsHeader."""
        super().__init__(*args, **kwargs)
        self._totals: MemoryCategories | None = None
        self._process_count: int = 0

    def on_mount(self) -> None:
        self.update(self._get_totals_info())

    def update_totals(self, snapshot: MemorySnapshot) -> None:
        """Update the totals from a memory snapshot."""
        self._totals = snapshot.totals
        self._process_count = len(snapshot.listings)
        self.update(self._get_totals_info())

    def _get_totals_info(self) -> str:
        """Get totals display."""
        if self._totals is None:
            return "Loading memory info..."
        parts = [
            f"{CATEGORY_HEADERS[name]} [cyan]{format_bytes(value).strip()}[/cyan]"
            for name, value in self._totals.scalars().items()
        ]
        parts.append(f"OTHER [cyan]{format_bytes(self._totals.other).strip()}[/cyan]")
        return (
            f"[bold]PSS total {format_bytes(self._totals.total).strip()}[/bold] "
            f"over {self._process_count} processes\n" + "  ".join(parts)
        )


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._sort_key: SortKey = SortKey.TOTAL
        self._sort_reverse: bool = True

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        current_index = keys.index(self._sort_key)
        next_index = (current_index + 1) % len(keys)
        self._sort_key = keys[next_index]
        # Memory sizes sort largest first, pids ascending
        self._sort_reverse = self._sort_key is not SortKey.PID
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("PPID", key="ppid", width=8)
        for name in SCALAR_CATEGORIES:
            table.add_column(CATEGORY_HEADERS[name], key=name, width=9)
        table.add_column("OTHER", key="other", width=9)
        table.add_column("TOTAL", key="total", width=9)
        table.add_column("Command", key="command")

    def update_listings(self, listings: list[ProcessListing]) -> None:
        """
        Replace the table contents with new listings.

        Rows are rebuilt in sorted order so the table reflects the sort key.
        """
        table = self.query_one("#process-table", DataTable)
        table.clear()
        for listing in self._sort_listings(listings):
            table.add_row(*self._row_cells(listing), key=str(listing.pid))

    def _sort_listings(self, listings: list[ProcessListing]) -> list[ProcessListing]:
        """Sort listings based on the current sort key."""
        key_func = {
            SortKey.TOTAL: lambda p: p.categories.total,
            SortKey.HEAP: lambda p: p.categories.heap,
            SortKey.STACK: lambda p: p.categories.stack,
            SortKey.PID: lambda p: p.pid,
        }
        return sorted(listings, key=key_func[self._sort_key], reverse=self._sort_reverse)

    @staticmethod
    def _row_cells(listing: ProcessListing) -> list[str]:
        categories = listing.categories
        return [
            str(listing.pid),
            str(listing.parent_pid),
            *(format_bytes(value) for value in categories.scalars().values()),
            format_bytes(categories.other),
            format_bytes(categories.total),
            listing.command_line[:80],
        ]


class MemsplitApp(App):
    """Main memsplit application."""

    TITLE = "memsplit"
    SUB_TITLE = "Per-process memory composition"

    CSS = """
    Screen {
        layout: vertical;
    }

    #totals-header {
        dock: top;
        height: auto;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "sort", "Sort"),
        ("f6", "sort", "Sort"),
    ]

    def __init__(self, config: MonitorConfig | None = None, proc_root: str = "/proc") -> None:
        """Initialize the MemsplitApp."""
        super().__init__()
        self._config = config if config is not None else MonitorConfig()
        self._update_queue: Queue[MemorySnapshot | Exception] = Queue()
        self._monitor = MemoryMonitor(self._update_queue, self._config, proc_root=proc_root)
        self._last_snapshot: MemorySnapshot | None = None

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield TotalsHeader(id="totals-header")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the memory monitor when the app is mounted."""
        self._monitor.start()
        # Set up a timer to poll the queue for updates
        self.set_interval(0.25, self._check_for_updates)

    def on_unmount(self) -> None:
        self._monitor.stop()

    def _check_for_updates(self) -> None:
        """Check the queue for snapshots and refresh the UI."""
        # Drain the queue to get the most recent snapshot
        snapshot = None
        while True:
            try:
                item = self._update_queue.get_nowait()
            except Empty:
                break
            if isinstance(item, Exception):
                self._monitor.stop()
                self.exit(return_code=1, message=f"memsplit: fatal: {item}")
                return
            snapshot = item

        if snapshot is not None:
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: MemorySnapshot) -> None:
        """Update the UI with the new memory snapshot."""
        self._last_snapshot = snapshot
        self.query_one("#totals-header", TotalsHeader).update_totals(snapshot)
        self.query_one(ProcessTable).update_listings(snapshot.listings)

    def action_sort(self) -> None:
        """Handle sort action - cycle through sort keys."""
        process_table = self.query_one(ProcessTable)
        new_sort_key = process_table.cycle_sort()
        if self._last_snapshot is not None:
            process_table.update_listings(self._last_snapshot.listings)
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()
