"""Target registry — loads targets.yaml and provides typed models.

Single source of truth for the monitored target list on disk.
The monitor engine, API, and CLI all consume this.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

TARGETS_PATH = Path(__file__).parent.parent.parent / "targets.yaml"

DEFAULT_CHECK_INTERVAL = 30
DEFAULT_TIMEOUT = 5.0


# ── Data models ──────────────────────────────────────────────────────────────


class Protocol(str, Enum):
    PING = "ping"
    TCP = "tcp"
    UDP = "udp"

    @classmethod
    def parse(cls, value: str | Protocol) -> Protocol:
        if isinstance(value, Protocol):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown protocol: {value!r}") from None

    @property
    def label(self) -> str:
        return self.value.upper()

    @property
    def default_port(self) -> int | None:
        return _DEFAULT_PORTS[self]

    @property
    def confirms_reachability(self) -> bool:
        """False for UDP: a successful send says nothing about the remote end."""
        return self is not Protocol.UDP


_DEFAULT_PORTS = {Protocol.PING: None, Protocol.TCP: 80, Protocol.UDP: 53}

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    raise ValueError(f"Invalid enabled flag: {value!r}")


@dataclass(frozen=True)
class Target:
    """A host (+ optional port) to check periodically with one protocol."""

    name: str
    host: str
    port: int | None = None
    protocol: Protocol = Protocol.PING
    enabled: bool = True

    @property
    def effective_port(self) -> int | None:
        return self.port if self.port is not None else self.protocol.default_port

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}" if self.port is not None else self.host

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Target:
        """Build a validated Target from untrusted input.

        Raises ``ValueError`` on a missing name/host, a bad port, an
        unknown protocol, or an enabled flag that is not a boolean.
        """
        name = str(raw.get("name") or "").strip()
        host = str(raw.get("host") or "").strip()
        if not name:
            raise ValueError("Target 'name' is required")
        if not host:
            raise ValueError("Target 'host' is required")

        port = raw.get("port")
        if port is not None and port != "":
            try:
                port = int(port)
            except (TypeError, ValueError):
                raise ValueError(f"Invalid port: {port!r}") from None
            if not 1 <= port <= 65535:
                raise ValueError(f"Port out of range: {port}")
        else:
            port = None

        return cls(
            name=name,
            host=host,
            port=port,
            protocol=Protocol.parse(raw.get("protocol", Protocol.PING)),
            enabled=raw.get("enabled") is None or _parse_bool(raw["enabled"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "host": self.host,
            "port": self.port,
            "protocol": self.protocol.value,
            "enabled": self.enabled,
        }


def default_targets() -> list[Target]:
    return [
        Target(name="Google DNS", host="8.8.8.8", protocol=Protocol.PING),
        Target(name="Cloudflare DNS", host="1.1.1.1", protocol=Protocol.PING),
        Target(name="Local HTTP", host="127.0.0.1", port=80, protocol=Protocol.TCP, enabled=False),
    ]


# ── Registry ─────────────────────────────────────────────────────────────────


class TargetRegistry:
    """Loads and saves the target list from targets.yaml.

    Mutations and ``save`` hold ``lock``; callers that change the list and
    then save hold it across both so concurrent writers cannot interleave.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path else TARGETS_PATH
        self.targets: list[Target] = []
        self.check_interval_seconds: int | None = None
        self.timeout_seconds: float | None = None
        self._loaded = False
        self.lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self, force: bool = False) -> list[Target]:
        """Parse targets.yaml and return the Target list."""
        with self.lock:
            if self._loaded and not force:
                return self.targets
            self.targets = self._read()
            self._loaded = True
            return self.targets

    def _read(self) -> list[Target]:
        targets: list[Target] = []
        if not self._path.exists():
            logger.warning("Targets file not found: %s", self._path)
            return targets

        try:
            raw = yaml.safe_load(self._path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to parse %s: %s", self._path, e)
            return targets

        if not isinstance(raw, dict):
            logger.error("Unexpected document in %s (expected a mapping)", self._path)
            return targets

        self.check_interval_seconds = _positive(raw.get("check_interval_seconds"), int)
        self.timeout_seconds = _positive(raw.get("timeout_seconds"), float)

        for entry in raw.get("targets") or []:
            try:
                targets.append(Target.from_dict(entry))
            except (AttributeError, ValueError) as e:
                logger.warning("Skipping malformed target entry: %s", e)

        logger.info("Loaded configuration with %d targets", len(targets))
        return targets

    def load_or_create(self) -> list[Target]:
        """Load the file, writing the default target list first if it is missing."""
        with self.lock:
            if self._path.exists():
                return self.load(force=True)
            logger.info("Targets file not found, creating default configuration")
            self.targets = default_targets()
            self.check_interval_seconds = DEFAULT_CHECK_INTERVAL
            self.timeout_seconds = DEFAULT_TIMEOUT
            self.save()
            self._loaded = True
            return self.targets

    def save(self) -> None:
        """Write the file atomically: dump to a sibling temp file, then rename over."""
        with self.lock:
            doc: dict[str, Any] = {}
            if self.check_interval_seconds is not None:
                doc["check_interval_seconds"] = self.check_interval_seconds
            if self.timeout_seconds is not None:
                doc["timeout_seconds"] = self.timeout_seconds
            doc["targets"] = [t.to_dict() for t in self.targets]

            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_name(self._path.name + ".tmp")
            try:
                tmp.write_text(
                    yaml.dump(doc, allow_unicode=True, sort_keys=False, default_flow_style=False),
                    encoding="utf-8",
                )
                os.replace(tmp, self._path)
            except OSError:
                tmp.unlink(missing_ok=True)
                raise
        logger.info("Configuration saved to %s", self._path)

    # ── Mutations (caller decides when to save) ──────────────────────────────

    def add_target(self, target: Target) -> None:
        with self.lock:
            self.targets.append(target)

    def remove_target(self, index: int) -> None:
        with self.lock:
            if 0 <= index < len(self.targets):
                del self.targets[index]

    def update_target(self, index: int, target: Target) -> None:
        with self.lock:
            if 0 <= index < len(self.targets):
                self.targets[index] = target

    def remove_matching(self, target: Target) -> bool:
        """Drop the first entry equal to *target*. Returns True if one was found."""
        with self.lock:
            try:
                self.targets.remove(target)
            except ValueError:
                return False
            return True

    def replace_matching(self, old: Target, new: Target) -> bool:
        with self.lock:
            try:
                index = self.targets.index(old)
            except ValueError:
                self.targets.append(new)
                return False
            self.targets[index] = new
            return True


def _positive(value: Any, cast: type) -> Any:
    if value is None:
        return None
    try:
        value = cast(value)
    except (TypeError, ValueError):
        logger.warning("Ignoring invalid setting value: %r", value)
        return None
    return value if value > 0 else None
