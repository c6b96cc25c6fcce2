"""Shared test fixtures."""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Iterable

import pytest

from src.monitor.engine import MonitorEngine
from src.monitor.probes import ErrorKind, ProbeResult
from src.targets.registry import Protocol, Target


class ScriptedProbe:
    """Probe stand-in: replays scripted results, then repeats the last one.

    ``gate`` (when given) must be set before any probe call returns, which
    lets a test hold a supervisor inside a probe.
    """

    def __init__(self, results: Iterable[bool] = (True,), gate: threading.Event | None = None) -> None:
        self._results = deque(results)
        self._last = self._results[-1] if self._results else True
        self.gate = gate
        self.calls = 0
        self.called = threading.Event()
        self._lock = threading.Lock()

    def __call__(self, target: Target, timeout: float) -> ProbeResult:
        with self._lock:
            self.calls += 1
            ok = self._results.popleft() if self._results else self._last
        self.called.set()
        if self.gate is not None:
            self.gate.wait(5)
        if ok:
            return ProbeResult.success(12)
        return ProbeResult.failure(ErrorKind.TRANSPORT, "Connection refused")


def _wait_until(predicate, timeout: float = 3.0, step: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(step)
    return bool(predicate())


@pytest.fixture
def wait_until():
    """Poll a predicate until it is truthy or the timeout elapses."""
    return _wait_until


@pytest.fixture
def make_probe():
    return ScriptedProbe


@pytest.fixture
def target() -> Target:
    return Target(name="Local", host="127.0.0.1", port=80, protocol=Protocol.TCP)


@pytest.fixture
def probe() -> ScriptedProbe:
    return ScriptedProbe([True])


@pytest.fixture
def engine(probe):
    """Engine with a fast tick and a scripted probe; shut down after the test."""
    eng = MonitorEngine(interval=0.02, timeout=0.5, probe=probe, grace=2.0)
    yield eng
    eng.shutdown(timeout=2.0)
