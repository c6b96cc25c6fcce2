"""Target supervisor — one repeating, cancellable check loop per target.

Each supervisor runs in its own daemon thread so a probe blocked on network
I/O never stalls another target. Cancellation is a threading.Event: the
inter-tick wait returns as soon as it is set, and a probe that finishes
after cancellation is discarded instead of committed.

Lifecycle:
    sup = TargetSupervisor(record_id, target, is_registered, commit)
    sup.start()
    ...
    sup.stop(wait=True, timeout=2)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from enum import Enum

from src.monitor.probes import ErrorKind, ProbeResult, run_probe
from src.targets.registry import Target

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 30.0
DEFAULT_TIMEOUT = 5.0


class SupervisorState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    STOPPED = "stopped"


class TargetSupervisor:
    """Runs the protocol probe for one target on a fixed interval.

    ``is_registered(record_id)`` lets the loop notice that its record is
    gone and exit on its own. ``commit(record_id, result)`` applies a
    result and returns False when the record no longer exists.
    """

    def __init__(
        self,
        record_id: str,
        target: Target,
        is_registered: Callable[[str], bool],
        commit: Callable[[str, ProbeResult], bool],
        probe: Callable[[Target, float], ProbeResult] = run_probe,
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.record_id = record_id
        self.target = target
        self.interval = interval
        self.timeout = timeout
        self._is_registered = is_registered
        self._commit = commit
        self._probe = probe
        self._stop = threading.Event()
        self._started = False
        self._thread = threading.Thread(
            target=self._loop, name=f"monitor-{record_id[:8]}", daemon=True,
        )

    # -- public API ------------------------------------------------------------

    @property
    def state(self) -> SupervisorState:
        if not self._started:
            return SupervisorState.PENDING
        if self._stop.is_set() or not self._thread.is_alive():
            return SupervisorState.STOPPED
        return SupervisorState.RUNNING

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        """Start the check loop. Raises RuntimeError if the thread cannot start."""
        self._thread.start()
        self._started = True

    def stop(self, wait: bool = False, timeout: float | None = None) -> None:
        """Signal the loop to exit. Safe to call any number of times."""
        self._stop.set()
        if wait:
            self.join(timeout)

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the thread to exit. Returns True if it has."""
        if self._started and threading.current_thread() is not self._thread:
            self._thread.join(timeout)
        return not self._thread.is_alive()

    # -- loop ------------------------------------------------------------------

    def _loop(self) -> None:
        logger.debug("Supervisor started: %s (%s)", self.target.name, self.record_id)
        while not self._stop.is_set():
            try:
                if not self._tick():
                    break
            except Exception:
                logger.exception("Check loop error: %s (%s)", self.target.name, self.record_id)

            if self._stop.wait(self.interval):
                break
        self._stop.set()
        logger.debug("Supervisor stopped: %s (%s)", self.target.name, self.record_id)

    def _tick(self) -> bool:
        """One check cycle. Returns False when the loop should end."""
        if not self._is_registered(self.record_id):
            logger.warning("Record %s no longer registered — stopping its supervisor", self.record_id)
            return False

        if not self.target.enabled:
            return True

        result = self._run_probe()
        if self._stop.is_set():
            return False

        if not self._commit(self.record_id, result):
            logger.warning("Record %s vanished before commit — stopping its supervisor", self.record_id)
            return False
        return True

    def _run_probe(self) -> ProbeResult:
        try:
            return self._probe(self.target, self.timeout)
        except Exception as e:
            logger.exception("Probe error: %s", self.target.address)
            return ProbeResult.failure(ErrorKind.TRANSPORT, f"Error: {type(e).__name__}: {e}")
