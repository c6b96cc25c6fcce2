"""Per-target status record and its update rule.

A record is written only by its own supervisor (through the engine) and is
read elsewhere only as a copy.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from src.targets.registry import Target

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Transition(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


def latency_class(response_time_ms: int | None, is_online: bool) -> str:
    """Advisory colouring bucket for presentation layers (not engine state)."""
    if not is_online or response_time_ms is None:
        return "none"
    if response_time_ms < 100:
        return "fast"
    if response_time_ms < 500:
        return "ok"
    return "slow"


@dataclass
class StatusRecord:
    """Reliability profile of one monitored target."""

    target: Target
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    is_online: bool = False
    last_check: datetime = field(default_factory=utcnow)
    last_online: datetime | None = None
    last_offline: datetime | None = None
    response_time_ms: int | None = None
    last_error: str | None = None
    total_checks: int = 0
    successful_checks: int = 0
    uptime_percentage: float = 0.0

    def update(
        self,
        is_online: bool,
        response_time_ms: int | None,
        error: str | None,
        now: datetime | None = None,
    ) -> Transition | None:
        """Fold one check result into the record.

        Compares against the previous state before committing the new one,
        so a transition is reported once per change, not once per check.
        """
        now = now or utcnow()
        transition = None

        self.last_check = now
        self.total_checks += 1
        self.last_error = error
        self.response_time_ms = response_time_ms

        if is_online:
            self.successful_checks += 1
            self.last_online = now
            if not self.is_online:
                transition = Transition.ONLINE
                logger.info("%s is now ONLINE", self.target.name)
        elif self.is_online:
            self.last_offline = now
            transition = Transition.OFFLINE
            logger.warning("%s is now OFFLINE", self.target.name)

        self.is_online = is_online
        self.uptime_percentage = (
            self.successful_checks / self.total_checks * 100 if self.total_checks else 0.0
        )
        return transition

    def copy(self) -> StatusRecord:
        # Target is frozen and the rest are immutable values
        return dataclasses.replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.target.name,
            "host": self.target.host,
            "port": self.target.port,
            "address": self.target.address,
            "protocol": self.target.protocol.value,
            "enabled": self.target.enabled,
            "signal": "confirmed" if self.target.protocol.confirms_reachability else "send-only",
            "is_online": self.is_online,
            "last_check": self.last_check.isoformat(),
            "last_online": self.last_online.isoformat() if self.last_online else None,
            "last_offline": self.last_offline.isoformat() if self.last_offline else None,
            "response_time_ms": self.response_time_ms,
            "latency_class": latency_class(self.response_time_ms, self.is_online),
            "last_error": self.last_error,
            "total_checks": self.total_checks,
            "successful_checks": self.successful_checks,
            "uptime_percentage": round(self.uptime_percentage, 2),
        }
