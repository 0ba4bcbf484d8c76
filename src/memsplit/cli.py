"""Command line interface for memsplit."""

import time
from pathlib import Path

import click
import psutil
from rich.console import Console

from memsplit.config import MonitorConfig
from memsplit.errors import ConfigError, MemsplitError
from memsplit.logging import configure as configure_logging
from memsplit.monitor import run_cycle
from memsplit.report import build_table


def _print_cycle(console: Console, config: MonitorConfig, raw: bool) -> None:
    snapshot = run_cycle(config)
    console.print(build_table(snapshot.listings, raw=raw))


@click.command()
@click.version_option(package_name="memsplit")
@click.argument("pattern", required=False)
@click.option(
    "--match-children",
    "-c",
    is_flag=True,
    help="Include children of processes matching PATTERN, even if they don't match.",
)
@click.option(
    "--interval",
    "-i",
    type=float,
    default=1.0,
    show_default=True,
    help="Refresh interval in seconds.",
)
@click.option(
    "--fail-on-noperm",
    "-f",
    is_flag=True,
    help="Fail if permission is denied to read a process's info, instead of skipping it.",
)
@click.option("--show-warnings", "-w", is_flag=True, help="Print warnings.")
@click.option("--include-self", is_flag=True, help="Include memsplit's own process.")
@click.option("--once", is_flag=True, help="Print one report and exit.")
@click.option("--plain", is_flag=True, help="Print a plain table every interval instead of the TUI.")
@click.option("--bytes", "raw", is_flag=True, help="Show exact byte counts in plain output.")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write log output to this file instead of stderr.",
)
def main(
    pattern: str | None,
    match_children: bool,
    interval: float,
    fail_on_noperm: bool,
    show_warnings: bool,
    include_self: bool,
    once: bool,
    plain: bool,
    raw: bool,
    log_file: Path | None,
) -> None:
    """Report process stack, heap, text, and data memory usage.

    PATTERN is a regex matched against each process's command line. Without
    it every process is reported.
    """
    config = MonitorConfig(
        pattern=pattern,
        include_descendants=match_children,
        include_self=include_self,
        fail_on_noperm=fail_on_noperm,
        interval=interval,
        show_warnings=show_warnings,
        log_file=log_file,
    )
    try:
        config.validate()
    except ConfigError as exc:
        raise click.UsageError(str(exc)) from exc

    configure_logging(show_warnings=show_warnings, log_file=log_file)

    if not (once or plain):
        from memsplit.app import MemsplitApp

        app = MemsplitApp(config)
        app.run()
        if app.return_code:
            raise SystemExit(app.return_code)
        return

    console = Console()
    if not console.is_terminal:
        # Piped output is not wrapped to a terminal width
        console.width = 250
    try:
        while True:
            _print_cycle(console, config, raw)
            if once:
                return
            time.sleep(config.interval)
    except (MemsplitError, psutil.Error, OSError) as exc:
        click.echo(f"memsplit: fatal: {exc}", err=True)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        return


if __name__ == "__main__":
    main()
