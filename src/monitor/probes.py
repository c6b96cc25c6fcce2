"""Liveness probes — one bounded-time check of one target.

Supports: ICMP ping (via the system utility), TCP connect, UDP send.
Every probe returns a ProbeResult and never raises for a failed check.

UDP is connectionless: a successful UDP probe only means the datagram left
this host within the timeout. No reply is awaited, so it is a much weaker
signal than a ping reply or an accepted TCP connection
(see ``Protocol.confirms_reachability``).
"""

from __future__ import annotations

import ipaddress
import logging
import os
import socket
import subprocess
import sys
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from src.config import settings
from src.targets.registry import Protocol, Target

logger = logging.getLogger(__name__)

UDP_PAYLOAD = b"ping"


# ── Models ───────────────────────────────────────────────────────────────────


class ErrorKind(str, Enum):
    RESOLUTION = "resolution"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a single probe."""

    ok: bool
    elapsed_ms: int
    error: str | None = None
    kind: ErrorKind | None = None

    @classmethod
    def success(cls, elapsed_ms: int) -> ProbeResult:
        return cls(ok=True, elapsed_ms=elapsed_ms)

    @classmethod
    def failure(cls, kind: ErrorKind, error: str, elapsed_ms: int = 0) -> ProbeResult:
        return cls(ok=False, elapsed_ms=elapsed_ms, error=error, kind=kind)


class ResolutionError(Exception):
    pass


def _elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)


def _literal_address(host: str, port: int) -> tuple | None:
    """(family, sockaddr) for an IP literal, or None when *host* is a name."""
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None
    if ip.version == 6:
        return socket.AF_INET6, (host, port, 0, 0)
    return socket.AF_INET, (host, port)


def resolve(host: str, port: int, sock_type: int, timeout: float) -> tuple:
    """Resolve host:port to the first usable (family, sockaddr) pair.

    IP literals skip the resolver. Names are looked up on a daemon thread of
    their own, so a hung lookup only ever holds the probe that issued it.

    Raises ResolutionError on failure and TimeoutError when the resolver
    does not answer within *timeout*.
    """
    literal = _literal_address(host, port)
    if literal is not None:
        return literal

    outcome: dict[str, Any] = {}

    def lookup() -> None:
        try:
            outcome["infos"] = socket.getaddrinfo(host, port, 0, sock_type)
        except (OSError, UnicodeError) as e:
            outcome["error"] = e

    worker = threading.Thread(target=lookup, name=f"resolve-{host}", daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        raise TimeoutError(f"Resolving {host}:{port} timed out after {timeout:.1f}s")

    if "error" in outcome:
        e = outcome["error"]
        raise ResolutionError(f"Could not resolve address {host}:{port}: {e}") from e
    infos = outcome.get("infos")
    if not infos:
        raise ResolutionError(f"Could not resolve address {host}:{port}")
    family, _, _, _, sockaddr = infos[0]
    return family, sockaddr


# ── Probe runners ────────────────────────────────────────────────────────────


def ping_command(host: str, timeout: float, executable: str | None = None) -> list[str]:
    """Build a one-packet ping invocation for this platform."""
    executable = executable or settings.ping_command
    if os.name == "nt":
        return [executable, "-n", "1", "-w", str(max(1, int(timeout * 1000))), host]
    if sys.platform == "darwin":
        # BSD ping takes -W in milliseconds
        return [executable, "-c", "1", "-W", str(max(1, int(timeout * 1000))), host]
    return [executable, "-c", "1", "-W", str(max(1, int(round(timeout)))), host]


def ping_check(host: str, timeout: float = 5.0) -> ProbeResult:
    """ICMP echo via the system ping utility — one packet, bounded wait."""
    t0 = time.perf_counter()
    creationflags = subprocess.CREATE_NO_WINDOW if os.name == "nt" else 0
    try:
        proc = subprocess.run(
            ping_command(host, timeout),
            capture_output=True,
            text=True,
            timeout=timeout + 1,
            creationflags=creationflags,
        )
    except subprocess.TimeoutExpired:
        return ProbeResult.failure(
            ErrorKind.TIMEOUT, f"Ping to {host} timed out after {timeout:.1f}s", _elapsed_ms(t0),
        )
    except FileNotFoundError:
        return ProbeResult.failure(ErrorKind.TRANSPORT, "ping utility not found", _elapsed_ms(t0))

    elapsed = _elapsed_ms(t0)
    if proc.returncode == 0:
        return ProbeResult.success(elapsed)

    # stderr when the utility explains itself, else its last stdout line
    stdout_lines = (proc.stdout or "").strip().splitlines()
    detail = (proc.stderr or "").strip() or (stdout_lines[-1].strip() if stdout_lines else "")
    if not detail:
        detail = f"exit status {proc.returncode}"
    return ProbeResult.failure(ErrorKind.TRANSPORT, f"Ping failed: {detail}", elapsed)


def tcp_check(host: str, port: int = 80, timeout: float = 5.0) -> ProbeResult:
    """TCP connect to one resolved address of host:port."""
    t0 = time.perf_counter()
    try:
        family, sockaddr = resolve(host, port, socket.SOCK_STREAM, timeout)
    except ResolutionError as e:
        return ProbeResult.failure(ErrorKind.RESOLUTION, str(e), _elapsed_ms(t0))
    except TimeoutError as e:
        return ProbeResult.failure(ErrorKind.TIMEOUT, str(e), _elapsed_ms(t0))

    remaining = max(0.05, timeout - (time.perf_counter() - t0))
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.settimeout(remaining)
        sock.connect(sockaddr)
    except (socket.timeout, TimeoutError):
        return ProbeResult.failure(
            ErrorKind.TIMEOUT,
            f"Connection to {host}:{port} timed out after {timeout:.1f}s",
            _elapsed_ms(t0),
        )
    except ConnectionRefusedError:
        return ProbeResult.failure(
            ErrorKind.TRANSPORT, f"Connection refused by {host}:{port}", _elapsed_ms(t0),
        )
    except OSError as e:
        return ProbeResult.failure(
            ErrorKind.TRANSPORT, f"Connection to {host}:{port} failed: {e}", _elapsed_ms(t0),
        )
    finally:
        sock.close()

    return ProbeResult.success(_elapsed_ms(t0))


def udp_check(host: str, port: int = 53, timeout: float = 5.0) -> ProbeResult:
    """Send one datagram from an ephemeral socket. Success = the send completed."""
    t0 = time.perf_counter()
    try:
        family, sockaddr = resolve(host, port, socket.SOCK_DGRAM, timeout)
    except ResolutionError as e:
        return ProbeResult.failure(ErrorKind.RESOLUTION, str(e), _elapsed_ms(t0))
    except TimeoutError as e:
        return ProbeResult.failure(ErrorKind.TIMEOUT, str(e), _elapsed_ms(t0))

    sock = socket.socket(family, socket.SOCK_DGRAM)
    try:
        sock.settimeout(max(0.05, timeout - (time.perf_counter() - t0)))
        sock.bind(("::", 0) if family == socket.AF_INET6 else ("0.0.0.0", 0))
        sock.sendto(UDP_PAYLOAD, sockaddr)
    except (socket.timeout, TimeoutError):
        return ProbeResult.failure(
            ErrorKind.TIMEOUT, f"UDP send to {host}:{port} timed out after {timeout:.1f}s", _elapsed_ms(t0),
        )
    except OSError as e:
        return ProbeResult.failure(
            ErrorKind.TRANSPORT, f"UDP send to {host}:{port} failed: {e}", _elapsed_ms(t0),
        )
    finally:
        sock.close()

    return ProbeResult.success(_elapsed_ms(t0))


# Dispatcher
PROBES: dict[Protocol, Callable[[Target, float], ProbeResult]] = {
    Protocol.PING: lambda t, timeout: ping_check(t.host, timeout),
    Protocol.TCP: lambda t, timeout: tcp_check(t.host, t.effective_port, timeout),
    Protocol.UDP: lambda t, timeout: udp_check(t.host, t.effective_port, timeout),
}


def run_probe(target: Target, timeout: float = 5.0) -> ProbeResult:
    """Run the probe for *target*'s protocol. Never raises for a failed check."""
    runner = PROBES.get(target.protocol)
    if runner is None:
        return ProbeResult.failure(ErrorKind.TRANSPORT, f"Unsupported protocol: {target.protocol}")
    try:
        result = runner(target, timeout)
    except Exception as e:
        logger.exception("Probe crashed for %s", target.address)
        return ProbeResult.failure(ErrorKind.TRANSPORT, f"Error: {type(e).__name__}: {e}")

    logger.debug(
        "[%s] %s → %s (%dms)%s",
        target.protocol.label, target.address, "up" if result.ok else "down",
        result.elapsed_ms, f" {result.error}" if result.error else "",
    )
    return result
