from src.targets.registry import (
    Protocol,
    Target,
    TargetRegistry,
    default_targets,
)

__all__ = [
    "Protocol",
    "Target",
    "TargetRegistry",
    "default_targets",
]
