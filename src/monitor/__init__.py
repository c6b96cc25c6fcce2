"""Monitor subsystem — probes, status records, supervisors, engine."""

from .engine import EngineError, MonitorEngine
from .probes import ErrorKind, ProbeResult, run_probe
from .status import StatusRecord, Transition
from .supervisor import SupervisorState, TargetSupervisor
