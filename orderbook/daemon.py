"""Scheduled fetch daemon.

Runs one reconcile cycle every ``ops.interval_seconds``. Runs never overlap
inside one daemon: the next run starts after the previous one returns and the
wait has elapsed. Failed runs stretch the wait exponentially up to
``MAX_BACKOFF``.

Usage:
    orderbook daemon                 # every 2 minutes (default)
    orderbook daemon --interval 60
    orderbook daemon --stop
    orderbook daemon --status
"""

import json
import logging
import os
import signal
import sys
import time
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from orderbook.config.schema import TrackerConfig
from orderbook.models.common import RunSource, utc_now_iso
from orderbook.models.reporting import RunSummary
from orderbook.pipeline.fetch_pipeline import FetchPipeline

logger = logging.getLogger(__name__)

MAX_BACKOFF = 600  # seconds
PID_DIR = Path("data")
PID_FILE = PID_DIR / "daemon.pid"
STATE_FILE = PID_DIR / "daemon_state.json"
LOG_DIR = Path("logs")
MAX_LOG_FILES = 100
STOP_GRACE_SECONDS = 60

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class DaemonStats:
    """Counters persisted to the state file after every run."""

    started_at: str | None = None
    runs: int = 0
    successes: int = 0
    failures: int = 0
    consecutive_failures: int = 0
    last_run: dict | None = field(default=None)

    def record(self, summary: RunSummary) -> None:
        self.last_run = {
            "trace_id": summary.trace_id,
            "success": summary.success,
            "total_entries": summary.total_entries,
            "saved": summary.saved_to_database,
            "closed": summary.closed_orders,
            "rate_limited": summary.rate_limited,
            "timed_out": summary.timed_out,
        }


def backoff_seconds(interval: int, consecutive_failures: int) -> int:
    """Wait before the next run; doubles per consecutive failure."""
    if consecutive_failures <= 0:
        return interval
    return min(interval * (2 ** consecutive_failures), MAX_BACKOFF)


def _read_pid() -> int | None:
    try:
        return int(PID_FILE.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else
        return True
    return True


@contextmanager
def _run_log():
    """Mirror root logging into a per-run file for the duration of a run."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    handler = logging.FileHandler(LOG_DIR / f"run_{stamp}.log")
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    try:
        yield handler
    finally:
        root.removeHandler(handler)
        handler.close()


class FetchDaemon:
    """Drives FetchPipeline on a fixed interval until signalled."""

    def __init__(
        self,
        config: TrackerConfig,
        db_path: str | None = None,
        interval: int | None = None,
        pipeline: FetchPipeline | None = None,
    ):
        self.config = config
        self.interval = interval or config.ops.interval_seconds
        # One pipeline for the daemon's lifetime so the page cache carries over
        self.pipeline = pipeline or FetchPipeline(config, db_path)
        self.stats = DaemonStats()
        self._running = False

    def start(self) -> None:
        self._check_not_already_running()
        PID_DIR.mkdir(parents=True, exist_ok=True)
        PID_FILE.write_text(str(os.getpid()))
        self._setup_signals()
        self._running = True
        self.stats.started_at = utc_now_iso()

        logger.info(
            "Daemon started pid=%d interval=%ds db=%s",
            os.getpid(), self.interval, self.pipeline.db_path,
        )
        print(f"Order-book daemon running (pid {os.getpid()}, every {self.interval}s)")
        print("   Stop: orderbook daemon --stop")

        try:
            self._loop()
        except KeyboardInterrupt:
            logger.info("Daemon interrupted by keyboard")
        finally:
            PID_FILE.unlink(missing_ok=True)
            self._save_state()
            logger.info(
                "Daemon stopped after %d runs (%d ok, %d failed)",
                self.stats.runs, self.stats.successes, self.stats.failures,
            )

    def _loop(self) -> None:
        while self._running:
            started = time.monotonic()
            if self.run_once():
                self.stats.consecutive_failures = 0
            else:
                self.stats.consecutive_failures += 1
            wait = backoff_seconds(self.interval, self.stats.consecutive_failures)
            if self.stats.consecutive_failures:
                logger.warning(
                    "%d consecutive failed runs, next run in %ds",
                    self.stats.consecutive_failures, wait,
                )
            self._save_state()

            deadline = started + wait
            while self._running and time.monotonic() < deadline:
                time.sleep(1)

    def run_once(self) -> bool:
        """One scheduled run with its own log file. True when it succeeded."""
        self.stats.runs += 1
        run_no = self.stats.runs
        try:
            with _run_log():
                ok = self._execute(run_no)
        finally:
            self._rotate_logs()
        if ok:
            self.stats.successes += 1
        else:
            self.stats.failures += 1
        return ok

    def _execute(self, run_no: int) -> bool:
        trace_id = str(uuid.uuid4())
        try:
            summary = self.pipeline.run(source=RunSource.SCHEDULED, trace_id=trace_id)
        except Exception:
            logger.exception("Run #%d crashed trace=%s", run_no, trace_id)
            return False

        self.stats.record(summary)
        if not summary.success:
            logger.error("Run #%d failed trace=%s: %s", run_no, summary.trace_id, summary.details)
            return False
        logger.info(
            "Run #%d trace=%s: %d entries, %d saved, %d closed%s",
            run_no, summary.trace_id,
            summary.total_entries, summary.saved_to_database, summary.closed_orders,
            " (rate limited)" if summary.rate_limited else "",
        )
        return True

    def _rotate_logs(self) -> None:
        if not LOG_DIR.exists():
            return
        logs = sorted(LOG_DIR.glob("run_*.log"))
        excess = len(logs) - MAX_LOG_FILES
        for old in logs[:max(excess, 0)]:
            old.unlink(missing_ok=True)

    def _setup_signals(self) -> None:
        def _request_stop(signum: int, frame: object) -> None:
            logger.info("%s received, stopping after current run", signal.Signals(signum).name)
            self._running = False

        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, _request_stop)

    def _check_not_already_running(self) -> None:
        if not PID_FILE.exists():
            return
        pid = _read_pid()
        if pid is None or not _pid_alive(pid):
            logger.info("Removing stale PID file %s", PID_FILE)
            PID_FILE.unlink(missing_ok=True)
            return
        print(f"Daemon already running (pid {pid}). Stop it first:")
        print("   orderbook daemon --stop")
        sys.exit(1)

    def _save_state(self) -> None:
        state = {"pid": os.getpid(), "interval": self.interval, **asdict(self.stats)}
        state["last_update"] = utc_now_iso()
        PID_DIR.mkdir(parents=True, exist_ok=True)
        STATE_FILE.write_text(json.dumps(state, indent=2))


def stop_daemon() -> int:
    """Send SIGTERM to the daemon and wait for it to exit."""
    if not PID_FILE.exists():
        print("No daemon running (no PID file found)")
        return 1
    pid = _read_pid()
    if pid is None:
        print("Corrupt PID file, removing")
        PID_FILE.unlink(missing_ok=True)
        return 1
    if not _pid_alive(pid):
        print(f"Daemon not running (stale pid {pid}), cleaning up")
        PID_FILE.unlink(missing_ok=True)
        return 0

    print(f"Stopping daemon (pid {pid})...")
    os.kill(pid, signal.SIGTERM)
    for _ in range(STOP_GRACE_SECONDS):
        time.sleep(1)
        if not _pid_alive(pid):
            print("Daemon stopped")
            PID_FILE.unlink(missing_ok=True)
            return 0

    print(f"Daemon still alive after {STOP_GRACE_SECONDS}s, sending SIGKILL")
    os.kill(pid, signal.SIGKILL)
    PID_FILE.unlink(missing_ok=True)
    return 0


def daemon_status() -> int:
    """Print the last saved daemon state."""
    if not STATE_FILE.exists():
        print("No daemon state found")
        return 1

    state = json.loads(STATE_FILE.read_text())
    pid = state.get("pid")
    running = isinstance(pid, int) and _pid_alive(pid)

    print(f"Daemon {'running' if running else 'stopped'}")
    for label, key in (
        ("PID", "pid"),
        ("Started", "started_at"),
        ("Total runs", "runs"),
        ("Successes", "successes"),
        ("Failures", "failures"),
        ("Consecutive failures", "consecutive_failures"),
    ):
        print(f"  {label}: {state.get(key, '?')}")
    print(f"  Interval: {state.get('interval', '?')}s")
    last = state.get("last_run")
    if last:
        flags = " (rate limited)" if last.get("rate_limited") else ""
        print(
            f"  Last run {last.get('trace_id', '?')}: {last.get('total_entries', 0)} entries, "
            f"{last.get('saved', 0)} saved, {last.get('closed', 0)} closed{flags}"
        )
    print(f"  Last update: {state.get('last_update', '?')}")
    return 0
