"""Monitor engine — the addressable registry of monitored targets.

Maps record id → (StatusRecord, per-entry lock, TargetSupervisor).
The membership lock only guards insert/delete and copying the entry list;
reads and writes of a record go through that entry's own lock, so listing
never blocks a supervisor working on an unrelated target.

Invariant: the set of live supervisors is exactly the set of ids present.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.monitor.probes import ProbeResult, run_probe
from src.monitor.status import StatusRecord, Transition, utcnow
from src.monitor.supervisor import DEFAULT_INTERVAL, DEFAULT_TIMEOUT, TargetSupervisor
from src.targets.registry import Target

logger = logging.getLogger(__name__)

TransitionListener = Callable[[StatusRecord, Transition], Any]


class EngineError(RuntimeError):
    """Monitoring could not be started for a target."""


@dataclass
class _Entry:
    record: StatusRecord
    supervisor: TargetSupervisor | None = None
    lock: threading.Lock = field(default_factory=threading.Lock)


class MonitorEngine:
    """Owns every StatusRecord and the supervisor bound to it."""

    def __init__(
        self,
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        probe: Callable[[Target, float], ProbeResult] = run_probe,
        clock: Callable[[], datetime] = utcnow,
        grace: float = 2.0,
    ) -> None:
        self.interval = interval
        self.timeout = timeout
        self.grace = grace
        self._probe = probe
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._listeners: list[TransitionListener] = []

    @classmethod
    def from_targets(cls, targets: Iterable[Target], **kwargs: Any) -> MonitorEngine:
        """Build an engine and start monitoring every configured target."""
        engine = cls(**kwargs)
        for target in targets:
            engine.add(target)
        return engine

    # -- public API ------------------------------------------------------------

    def add(self, target: Target) -> str:
        """Start monitoring *target* and return the new record id."""
        record = StatusRecord(target=target, last_check=self._clock())
        entry = _Entry(record=record)
        entry.supervisor = TargetSupervisor(
            record.id,
            target,
            is_registered=self.__contains__,
            commit=self._commit,
            probe=self._probe,
            interval=self.interval,
            timeout=self.timeout,
        )

        with self._lock:
            self._entries[record.id] = entry
        try:
            entry.supervisor.start()
        except RuntimeError as e:
            with self._lock:
                self._entries.pop(record.id, None)
            raise EngineError(f"Could not start monitoring {target.name}: {e}") from e

        logger.info("Monitoring %s (%s %s) as %s", target.name, target.protocol.label, target.address, record.id)
        return record.id

    def remove(self, record_id: str, wait: bool = False) -> bool:
        """Stop monitoring and delete the record. Unknown ids are a no-op.

        Returns True if a record was removed. With ``wait`` the call blocks
        up to ``grace`` seconds for the supervisor thread to exit.
        """
        with self._lock:
            entry = self._entries.pop(record_id, None)
        if entry is None:
            logger.debug("Remove ignored, unknown id %s", record_id)
            return False

        entry.supervisor.stop(wait=wait, timeout=self.grace)
        logger.info("Stopped monitoring %s (%s)", entry.record.target.name, record_id)
        return True

    def replace(self, record_id: str, target: Target) -> str | None:
        """Swap a target for a new one (remove + add). Returns the new id."""
        if not self.remove(record_id):
            return None
        return self.add(target)

    def get(self, record_id: str) -> StatusRecord | None:
        with self._lock:
            entry = self._entries.get(record_id)
        if entry is None:
            return None
        with entry.lock:
            return entry.record.copy()

    def list(self) -> list[StatusRecord]:
        """Point-in-time copies of every record, in insertion order."""
        with self._lock:
            entries = list(self._entries.values())
        snapshots = []
        for entry in entries:
            with entry.lock:
                snapshots.append(entry.record.copy())
        return snapshots

    def summary(self) -> dict[str, int]:
        records = self.list()
        enabled = [r for r in records if r.target.enabled]
        online = sum(1 for r in enabled if r.is_online)
        return {
            "total": len(records),
            "online": online,
            "offline": len(enabled) - online,
            "disabled": len(records) - len(enabled),
        }

    def running_count(self) -> int:
        with self._lock:
            entries = list(self._entries.values())
        return sum(1 for e in entries if e.supervisor is not None and e.supervisor.is_alive)

    def subscribe(self, listener: TransitionListener) -> Callable[[], None]:
        """Register a callback for online/offline transitions. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop every supervisor and wait (bounded) for all of them."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            entry.supervisor.stop()

        deadline = time.monotonic() + (self.grace if timeout is None else timeout)
        for entry in entries:
            entry.supervisor.join(max(0.0, deadline - time.monotonic()))
        logger.info("Monitor engine stopped (%d targets)", len(entries))

    def __contains__(self, record_id: object) -> bool:
        with self._lock:
            return record_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # -- supervisor side -------------------------------------------------------

    def _commit(self, record_id: str, result: ProbeResult) -> bool:
        """Apply one probe result as an atomic replace of the record."""
        with self._lock:
            entry = self._entries.get(record_id)
        if entry is None:
            return False

        with entry.lock:
            updated = entry.record.copy()
            transition = updated.update(
                result.ok,
                result.elapsed_ms if result.ok else None,
                result.error,
                now=self._clock(),
            )
            entry.record = updated
            snapshot = updated.copy() if transition else None

        if transition is not None:
            self._notify(snapshot, transition)
        return True

    def _notify(self, record: StatusRecord, transition: Transition) -> None:
        for listener in list(self._listeners):
            try:
                listener(record, transition)
            except Exception:
                logger.exception("Transition listener error")
