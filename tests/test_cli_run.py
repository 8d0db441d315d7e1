"""End-to-end tests for the rchive command."""

import os
import signal
import time

import pytest

from rchive import __version__
from rchive.cli.dispatcher import main
from rchive.cli.run import EXIT_FATAL, EXIT_INTERRUPTED, EXIT_OK, interrupt_on_signals
from rchive.core.lock import RunLock, lock_key_for
from rchive.errors import InterruptedRunError

FAKE_RSYNC = """#!/bin/sh
echo "$@" >> "{log}"
for last; do :; done
case " $* " in
  *" --dry-run "*) ;;
  *) mkdir -p "${{last}}srv/data" && echo payload > "${{last}}srv/data/file.txt" ;;
esac
echo ">f+++++++++ srv/data/file.txt"
echo "Number of files: 1"
exit {exit_code}
"""


@pytest.fixture
def rsync_on_path(tmp_path, monkeypatch):
    """Put a fake rsync first on PATH; returns the file its arguments go to."""

    def _install(exit_code=0):
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir(exist_ok=True)
        log = tmp_path / "rsync-args.log"
        script = bin_dir / "rsync"
        script.write_text(FAKE_RSYNC.format(log=log, exit_code=exit_code))
        script.chmod(0o755)
        monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
        return log

    return _install


@pytest.fixture
def run_config(tmp_path):
    config_path = tmp_path / "rchive.toml"
    config_path.write_text(
        f"""
[global]
backup_dest = "{tmp_path}/backup"
archive_dest = "{tmp_path}/archive"
log_dir = "{tmp_path}/logs"
lock_dir = "{tmp_path}/locks"
active_jobs = ["data"]

[archive]
enabled = true
compression = "gzip"
retention_count = 2

[snapshot]
enabled = true
retention_count = 2

[jobs.data]
source = "root@localhost:/srv/data"
"""
    )
    return config_path


class TestMain:
    """Tests for argument handling in main()."""

    def test_version(self, capsys):
        assert main(["--version"]) == 0
        assert capsys.readouterr().out.strip() == f"rchive {__version__}"

    def test_print_example_config(self, capsys):
        assert main(["--print-example-config"]) == 0
        assert "[global]" in capsys.readouterr().out

    def test_missing_config_argument(self):
        with pytest.raises(SystemExit) as exc:
            main([])
        assert exc.value.code == EXIT_FATAL

    def test_unknown_option(self, run_config):
        with pytest.raises(SystemExit) as exc:
            main([str(run_config), "--frobnicate"])
        assert exc.value.code == EXIT_FATAL

    def test_nonexistent_config(self, tmp_path):
        assert main([str(tmp_path / "missing.toml")]) == EXIT_FATAL

    def test_invalid_job_is_fatal(self, tmp_path, rsync_on_path):
        log = rsync_on_path()
        config_path = tmp_path / "bad.toml"
        config_path.write_text(
            f'[global]\nbackup_dest = "{tmp_path}/backup"\nactive_jobs = ["bad-name"]\n\n'
            '[jobs.bad-name]\nsource = "u@h:/x"\n'
        )
        assert main([str(config_path)]) == EXIT_FATAL
        assert not log.exists()


class TestRun:
    """Tests for complete runs against a local job."""

    def test_full_run(self, tmp_path, run_config, rsync_on_path):
        log = rsync_on_path()

        assert main([str(run_config), "--exclude", "*.tmp"]) == EXIT_OK

        args = log.read_text()
        assert "--exclude=*.tmp" in args
        assert "--dry-run" not in args
        host_dir = tmp_path / "backup" / "localhost"
        assert (host_dir / "Live" / "srv/data/file.txt").read_text().strip() == "payload"
        assert (host_dir / "Snapshot.0" / "srv/data/file.txt").exists()
        archives = list((tmp_path / "archive" / "localhost").rglob("data-*.tar.gz"))
        assert len(archives) == 1
        log_files = list((tmp_path / "logs").glob("backup-*.log"))
        assert len(log_files) == 1
        assert "Global Status: SUCCESS" in log_files[0].read_text()
        # Lock released
        assert not list((tmp_path / "locks").glob("*.pid"))

    def test_dry_run(self, tmp_path, run_config, rsync_on_path):
        log = rsync_on_path()

        assert main([str(run_config), "--dry-run"]) == EXIT_OK

        assert "--dry-run" in log.read_text()
        assert not (tmp_path / "backup").exists()
        assert not (tmp_path / "archive").exists()

    def test_failed_job_still_exits_zero(self, tmp_path, run_config, rsync_on_path):
        rsync_on_path(exit_code=23)

        assert main([str(run_config)]) == EXIT_OK

        log_text = next((tmp_path / "logs").glob("backup-*.log")).read_text()
        assert "Global Status: ERROR" in log_text
        assert not (tmp_path / "archive").exists()

    def test_lock_held(self, tmp_path, run_config, rsync_on_path):
        log = rsync_on_path()
        with RunLock(lock_key_for(run_config), tmp_path / "locks"):
            assert main([str(run_config)]) == EXIT_FATAL
        assert not log.exists()

    def test_interrupted(self, tmp_path, run_config, rsync_on_path, monkeypatch):
        rsync_on_path()

        def interrupted(self, groups):
            raise InterruptedRunError("Backup run interrupted")

        monkeypatch.setattr("rchive.cli.run.HostScheduler.run", interrupted)
        assert main([str(run_config)]) == EXIT_INTERRUPTED
        assert not list((tmp_path / "locks").glob("*.pid"))

    def test_report_sent_per_host(self, tmp_path, run_config, rsync_on_path, monkeypatch):
        rsync_on_path()
        run_config.write_text(
            run_config.read_text().replace("[global]", '[global]\nreport_email = "ops@example.com"')
        )
        sent = []
        monkeypatch.setattr(
            "rchive.cli.run.send_report",
            lambda host_result, recipient, dry_run=False: sent.append((host_result.host, recipient)),
        )

        assert main([str(run_config)]) == EXIT_OK
        assert sent == [("localhost", "ops@example.com")]

        sent.clear()
        assert main([str(run_config), "--no-email"]) == EXIT_OK
        assert sent == []


class TestSignals:
    """Tests for termination signal handling."""

    @pytest.mark.parametrize("signum", [signal.SIGTERM, signal.SIGHUP, signal.SIGQUIT])
    def test_signal_becomes_keyboard_interrupt(self, signum):
        previous = signal.getsignal(signum)
        with pytest.raises(KeyboardInterrupt):
            with interrupt_on_signals():
                os.kill(os.getpid(), signum)
                time.sleep(5)
        assert signal.getsignal(signum) is previous

    def test_sighup_releases_lock(self, tmp_path, run_config, rsync_on_path, monkeypatch):
        """Test that a hangup mid-run exits 130 and removes the pid file."""
        log = rsync_on_path()

        def hang_up(self, groups):
            os.kill(os.getpid(), signal.SIGHUP)
            time.sleep(5)

        monkeypatch.setattr("rchive.cli.run.HostScheduler.run", hang_up)
        assert main([str(run_config)]) == EXIT_INTERRUPTED
        assert not list((tmp_path / "locks").glob("*.pid"))
        assert not log.exists()
