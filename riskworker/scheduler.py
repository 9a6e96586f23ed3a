"""
Risk Worker Scheduler
=====================
Runs the periodic risk tasks on independent cadences inside one process.

Each task gets a ticker thread that fires every interval_seconds. A tick
starts the task in a worker thread unless the previous run is still going,
in which case the tick is skipped (single-flight, never queued). A failing
run is logged and recorded on its task; the other tasks are unaffected and
the failed task simply runs again on its next tick.

The worker advertises liveness through a JSON PID file (pid plus heartbeat)
that is rewritten after every run and removed on shutdown.

Usage:
    scheduler = build_scheduler(db_manager, config)
    scheduler.run_forever()   # blocks until SIGINT/SIGTERM
"""

import json
import logging
import os
import signal
import threading
import time
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Optional

from riskworker.analytics import TASK_BUILDERS, run_task
from riskworker.config import RiskConfig
from riskworker.models import utcnow

logger = logging.getLogger(__name__)

STATE_IDLE = 'IDLE'
STATE_RUNNING = 'RUNNING'

STATUS_SUCCESS = 'SUCCESS'
STATUS_FAILURE = 'FAILURE'


# =============================================================================
# PERIODIC TASK
# =============================================================================

class PeriodicTask:
    """
    One named job with its cadence and run bookkeeping.

    run_once() is guarded by a non-blocking lock: a call made while another
    call is still in flight returns False immediately and counts a skip.
    """

    def __init__(self, name: str, interval_seconds: float, func: Callable[[], Any]):
        if interval_seconds <= 0:
            raise ValueError(f"interval for {name} must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self.func = func

        self._lock = threading.Lock()
        self.state = STATE_IDLE
        self.last_started: Optional[datetime] = None
        self.last_finished: Optional[datetime] = None
        self.last_status: Optional[str] = None
        self.last_error: Optional[str] = None
        self.run_count = 0
        self.failure_count = 0
        self.skipped_count = 0

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run_once(self) -> bool:
        """Run the task unless it is already running. Returns True if it ran."""
        if not self._lock.acquire(blocking=False):
            self.skipped_count += 1
            logger.warning(f"{self.name} still running, skipping this tick")
            return False

        try:
            self.state = STATE_RUNNING
            self.last_started = utcnow()
            self.run_count += 1
            try:
                self.func()
            except Exception as e:
                self.failure_count += 1
                self.last_status = STATUS_FAILURE
                self.last_error = str(e)[:1000]
                logger.error(f"Task {self.name} failed: {e}", exc_info=True)
            else:
                self.last_status = STATUS_SUCCESS
                self.last_error = None
            return True
        finally:
            self.last_finished = utcnow()
            self.state = STATE_IDLE
            self._lock.release()

    def status(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'interval_seconds': self.interval_seconds,
            'state': self.state,
            'last_started': self.last_started.isoformat() if self.last_started else None,
            'last_finished': self.last_finished.isoformat() if self.last_finished else None,
            'last_status': self.last_status,
            'last_error': self.last_error,
            'run_count': self.run_count,
            'failure_count': self.failure_count,
            'skipped_count': self.skipped_count,
        }


# =============================================================================
# LIVENESS MARKER
# =============================================================================

class LivenessMarker:
    """JSON PID file: {"pid", "started_at", "heartbeat"}."""

    def __init__(self, path: str):
        self.path = path
        self.started_at: Optional[datetime] = None
        self.closed = False
        self._lock = threading.Lock()

    def write(self) -> None:
        self.started_at = utcnow()
        self.closed = False
        self.touch()
        logger.info(f"Liveness file written: {self.path} (pid={os.getpid()})")

    def touch(self) -> None:
        """Rewrite the file with a fresh heartbeat. No-op once removed."""
        payload = {
            'pid': os.getpid(),
            'started_at': (self.started_at or utcnow()).isoformat(),
            'heartbeat': utcnow().isoformat(),
        }
        directory = os.path.dirname(self.path)
        with self._lock:
            if self.closed:
                return
            if directory:
                os.makedirs(directory, exist_ok=True)
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, 'w') as f:
                json.dump(payload, f)
            os.replace(tmp_path, self.path)

    def remove(self) -> None:
        with self._lock:
            self.closed = True
            info = read_liveness(self.path)
            if info is not None and info.get('pid') != os.getpid():
                logger.warning(f"Liveness file {self.path} belongs to pid {info.get('pid')}, leaving it")
                return
            try:
                os.remove(self.path)
            except FileNotFoundError:
                return
        logger.info(f"Liveness file removed: {self.path}")


def read_liveness(path: str) -> Optional[Dict[str, Any]]:
    """Return the parsed liveness file, or None if missing or unreadable."""
    try:
        with open(path) as f:
            info = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning(f"Unreadable liveness file {path}: {e}")
        return None
    return info if isinstance(info, dict) else None


def is_alive(path: str, max_age_seconds: float, now: Optional[datetime] = None) -> bool:
    """True when the liveness file exists and its heartbeat is recent enough."""
    info = read_liveness(path)
    if not info or not info.get('heartbeat'):
        return False
    try:
        heartbeat = datetime.fromisoformat(info['heartbeat'])
    except (TypeError, ValueError):
        return False
    if heartbeat.tzinfo is None:
        heartbeat = heartbeat.replace(tzinfo=timezone.utc)
    now = now or utcnow()
    return (now - heartbeat).total_seconds() <= max_age_seconds


# =============================================================================
# SCHEDULER
# =============================================================================

class Scheduler:
    """
    Ticker thread per task; every task fires once immediately on start().

    stop() stops new ticks and waits up to the grace period for in-flight
    runs. Runs still going after that are abandoned (daemon threads) and
    reported.
    """

    def __init__(
        self,
        tasks: Iterable[PeriodicTask],
        liveness: Optional[LivenessMarker] = None,
        shutdown_grace_seconds: float = 30.0,
    ):
        self.tasks: List[PeriodicTask] = list(tasks)
        self.liveness = liveness
        self.shutdown_grace_seconds = shutdown_grace_seconds

        self._stop = threading.Event()
        self._tickers: List[threading.Thread] = []
        self._inflight: List[threading.Thread] = []
        self._inflight_lock = threading.Lock()
        self._started = False
        self._stopped = False

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    # ------------------ lifecycle ------------------

    def start(self) -> None:
        if self._started:
            raise RuntimeError("scheduler already started")
        self._started = True

        if self.liveness:
            self.liveness.write()

        for task in self.tasks:
            logger.info(f"Scheduling {task.name} every {task.interval_seconds:.0f}s")
            ticker = threading.Thread(
                target=self._tick_loop, args=(task,), name=f"tick-{task.name}", daemon=True
            )
            self._tickers.append(ticker)
            ticker.start()

    def stop(self, grace_seconds: Optional[float] = None) -> bool:
        """Stop scheduling and wait for in-flight runs. True if all finished."""
        if self._stopped:
            return True
        grace = self.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        logger.info(f"Stopping scheduler (grace period {grace:.0f}s)")
        self._stop.set()

        deadline = time.monotonic() + grace
        for thread in self._tickers + self._snapshot_inflight():
            thread.join(max(deadline - time.monotonic(), 0))

        unfinished = [t.name for t in self._snapshot_inflight() if t.is_alive()]
        if unfinished:
            logger.warning(f"Abandoning runs still in flight after grace period: {', '.join(unfinished)}")

        # Closes the heartbeat gate before the file goes away
        self._stopped = True
        if self.liveness:
            try:
                self.liveness.remove()
            except OSError as e:
                logger.error(f"Failed to remove liveness file: {e}")

        logger.info("Scheduler stopped")
        return not unfinished

    def run_forever(self, install_signals: bool = True) -> None:
        """Start, block until a stop is requested, then stop gracefully."""
        if install_signals:
            self.install_signal_handlers()
        self.start()
        while not self._stop.wait(1.0):
            pass
        self.stop()

    def request_stop(self) -> None:
        self._stop.set()

    def install_signal_handlers(self) -> None:
        def _graceful(signum, frame):
            logger.info(f"Received signal {signum}, shutting down")
            self._stop.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                signal.signal(sig, _graceful)
            except ValueError:
                # Only the main thread may install handlers
                logger.warning(f"Could not install handler for signal {sig}")

    def run_all_once(self) -> Dict[str, str]:
        """Run every task once in order on the calling thread."""
        for task in self.tasks:
            task.run_once()
            self._heartbeat()
        return {task.name: task.last_status for task in self.tasks}

    def status(self) -> List[Dict[str, Any]]:
        return [task.status() for task in self.tasks]

    # ------------------ ticking --------------------

    def _tick_loop(self, task: PeriodicTask) -> None:
        while not self._stop.is_set():
            self._dispatch(task)
            if self._stop.wait(task.interval_seconds):
                break

    def _dispatch(self, task: PeriodicTask) -> None:
        if task.is_running:
            task.skipped_count += 1
            logger.warning(f"{task.name} still running, skipping this tick")
            return

        worker = threading.Thread(
            target=self._execute, args=(task,), name=f"run-{task.name}", daemon=True
        )
        with self._inflight_lock:
            self._inflight = [t for t in self._inflight if t.is_alive()]
            self._inflight.append(worker)
        worker.start()

    def _execute(self, task: PeriodicTask) -> None:
        task.run_once()
        self._heartbeat()

    def _heartbeat(self) -> None:
        # Runs abandoned at shutdown must not recreate a removed file
        if not self.liveness or not self._started or self._stopped:
            return
        try:
            self.liveness.touch()
        except OSError as e:
            logger.error(f"Failed to refresh liveness file: {e}")

    def _snapshot_inflight(self) -> List[threading.Thread]:
        with self._inflight_lock:
            return list(self._inflight)


def build_scheduler(db_manager, config: RiskConfig) -> Scheduler:
    """Wire the five risk tasks to their configured cadences."""
    intervals = config.intervals.as_dict()
    tasks = [
        PeriodicTask(name, intervals[name], partial(run_task, name, db_manager, config))
        for name in TASK_BUILDERS
    ]
    return Scheduler(
        tasks,
        liveness=LivenessMarker(config.worker.pid_file),
        shutdown_grace_seconds=config.worker.shutdown_grace_seconds,
    )
