"""Refresh loop for memsplit."""

import threading
import time
from dataclasses import dataclass
from queue import Queue

import psutil
import structlog

from memsplit.classifier import classify
from memsplit.config import MIN_INTERVAL, MonitorConfig
from memsplit.errors import MemsplitError
from memsplit.models import MemoryCategories, ProcessListing
from memsplit.tree import enumerate_and_select


@dataclass(slots=True, frozen=True)
class MemorySnapshot:
    """Result of one refresh cycle."""

    listings: list[ProcessListing]
    totals: MemoryCategories
    taken_at: float


def run_cycle(config: MonitorConfig, proc_root: str = "/proc", log=None) -> MemorySnapshot:
    """
    Run one full refresh cycle: snapshot, select, classify.

    Nothing is carried over from earlier cycles. Fatal errors propagate.
    """
    nodes = enumerate_and_select(
        pattern=config.compiled_pattern(),
        include_descendants=config.include_descendants,
        include_self=config.include_self,
        fail_on_noperm=config.fail_on_noperm,
        log=log,
    )
    listings = classify(nodes, fail_on_noperm=config.fail_on_noperm, proc_root=proc_root, log=log)
    totals = sum((listing.categories for listing in listings), MemoryCategories())
    return MemorySnapshot(listings=listings, totals=totals, taken_at=time.time())


class MemoryMonitor:
    """
    Runs refresh cycles in a separate daemon thread and pushes each
    MemorySnapshot to a thread-safe Queue.

    A fatal error (unaccounted memory, inconsistent process tree, a failed
    read that the error policy does not allow to skip) is pushed to the queue
    instead, and the monitor stops.
    """

    def __init__(
        self,
        update_queue: "Queue[MemorySnapshot | Exception]",
        config: MonitorConfig | None = None,
        poll_rate: float | None = None,
        proc_root: str = "/proc",
    ) -> None:
        """
        Initialize the MemoryMonitor.

        Args:
            update_queue: Thread-safe queue to push updates to.
            config: What to sample. Defaults to every process.
            poll_rate: Seconds between cycles. Defaults to ``config.interval``.
            proc_root: Where procfs is mounted.
        """
        self._queue = update_queue
        self._config = config if config is not None else MonitorConfig()
        self._poll_rate = max(MIN_INTERVAL, poll_rate if poll_rate is not None else self._config.interval)
        self._proc_root = proc_root
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._error: Exception | None = None
        self._log = structlog.get_logger()

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(MIN_INTERVAL, value)

    @property
    def config(self) -> MonitorConfig:
        return self._config

    @property
    def error(self) -> Exception | None:
        """The fatal error that stopped the monitor, if any."""
        return self._error

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._error = None
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="MemoryMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            if self._thread is not threading.current_thread():
                self._thread.join(timeout=timeout)
            self._thread = None

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                snapshot = self.collect_snapshot()
            except (MemsplitError, psutil.Error, OSError) as exc:
                self._log.error("refresh_cycle_failed", error=str(exc))
                self._fail(exc)
                return
            except Exception as exc:
                self._log.exception("refresh_cycle_crashed")
                self._fail(exc)
                return
            self._queue.put(snapshot)

            # Wait for poll_rate seconds or until stop is requested
            self._stop_event.wait(timeout=self._poll_rate)

    def _fail(self, exc: Exception) -> None:
        self._error = exc
        self._queue.put(exc)
        self._stop_event.set()

    def collect_snapshot(self) -> MemorySnapshot:
        """Run one refresh cycle with this monitor's configuration."""
        return run_cycle(self._config, proc_root=self._proc_root, log=self._log)
