"""Tests for the memsplit command line."""

import pytest
from click.testing import CliRunner
from conftest import FakeProcess, smaps_entry, write_smaps

import memsplit.cli as cli
from memsplit.monitor import run_cycle


@pytest.fixture
def runner(monkeypatch):
    """CliRunner with logging configuration disabled."""
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)
    return CliRunner()


@pytest.fixture
def fake_proc(monkeypatch, fake_processes, proc_root):
    """Point run_cycle at the fake process table and fake /proc."""
    monkeypatch.setattr(
        cli, "run_cycle", lambda config: run_cycle(config, proc_root=str(proc_root))
    )
    return fake_processes, proc_root


def test_match_children_requires_pattern(runner):
    """Test -c without a pattern is a usage error."""
    result = runner.invoke(cli.main, ["-c", "--once"])

    assert result.exit_code == 2
    assert "requires a pattern" in result.output


def test_invalid_pattern(runner):
    """Test an invalid regex is a usage error."""
    result = runner.invoke(cli.main, ["(oops", "--once"])

    assert result.exit_code == 2
    assert "invalid pattern" in result.output


def test_invalid_interval(runner):
    """Test a zero interval is a usage error."""
    result = runner.invoke(cli.main, ["-i", "0", "--once"])

    assert result.exit_code == 2


def test_once_prints_table(runner, fake_proc):
    """Test --once prints one report for the selected processes."""
    processes, proc_root = fake_proc
    processes.append(FakeProcess(1, 0, ["/sbin/init"]))
    processes.append(FakeProcess(2, 1, ["sshd"]))
    processes.append(FakeProcess(3, 2, ["bash"]))
    write_smaps(proc_root, 2, smaps_entry("[heap]", pss_kb=10))
    write_smaps(proc_root, 3, smaps_entry("[heap]", pss_kb=5))

    result = runner.invoke(cli.main, ["sshd", "-c", "--once", "--bytes"])

    assert result.exit_code == 0, result.output
    assert "sshd" in result.output
    assert "bash" in result.output
    assert "/sbin/init" not in result.output
    assert str(15 * 1024) in result.output


def test_fatal_error_exits_nonzero(runner, fake_proc):
    """Test a fatal cycle error prints a diagnostic and exits 1."""
    processes, proc_root = fake_proc
    processes.append(FakeProcess(1, 0, ["/sbin/init"]))
    write_smaps(proc_root, 1, smaps_entry("[heap]", rss_kb=4, pss_kb=None))

    result = runner.invoke(cli.main, ["--once"])

    assert result.exit_code == 1
    assert "fatal" in result.output
    assert "The process is 1" in result.output
