"""Monitor configuration."""

import re
from dataclasses import dataclass
from pathlib import Path

from memsplit.errors import ConfigError

MIN_INTERVAL = 0.1  # seconds


@dataclass
class MonitorConfig:
    """What to sample and how often."""

    pattern: str | None = None  # Regex matched against each process's command line
    include_descendants: bool = False  # Also select children of matched processes
    include_self: bool = False  # Include memsplit's own process
    fail_on_noperm: bool = False  # Abort instead of skipping unreadable processes
    interval: float = 1.0  # Seconds between refreshes
    show_warnings: bool = False
    log_file: Path | None = None

    def validate(self) -> None:
        """Raise ConfigError if the configuration is unusable."""
        if self.include_descendants and self.pattern is None:
            raise ConfigError("include_descendants requires a pattern")
        if self.interval < MIN_INTERVAL:
            raise ConfigError(f"interval must be at least {MIN_INTERVAL} seconds")
        if self.pattern is not None:
            try:
                re.compile(self.pattern)
            except re.error as exc:
                raise ConfigError(f"invalid pattern {self.pattern!r}: {exc}") from exc

    def compiled_pattern(self) -> re.Pattern | None:
        """The pattern, compiled, or None when every process is wanted."""
        if self.pattern is None:
            return None
        return re.compile(self.pattern)
