"""Configuration and logging helpers for the partition visualizer."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Tuple

# Overhead added to every program for heap/stack (MiB)
PROGRAM_OVERHEAD = 0.2

TOTAL_MEM_MIB = 16.0
RESERVED_SIZE = 1.0
RESERVED_NAME = "S.O."

DEFAULT_PROGRAMS: Dict[str, Tuple[float, ...]] = {
    "Chrome": (0.5, 0.2),
    "VSCode": (0.8, 0.2),
    "Spotify": (0.4, 0.1),
    "Discord": (0.6, 0.15),
    "Minecraft": (1.2, 0.5),
}

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    capacity: float = TOTAL_MEM_MIB
    program_overhead: float = PROGRAM_OVERHEAD
    reserved_size: float = RESERVED_SIZE
    reserved_name: str = RESERVED_NAME
    state_path: Path = field(default_factory=lambda: Path.home() / ".partviz" / "state.json")
    log_level: str = "INFO"


def load_settings(**overrides) -> Settings:
    """
    Build settings from defaults plus keyword overrides.

    Raises:
        ValueError: If the sizes do not describe a usable address space.
    """
    settings = replace(Settings(), **overrides)
    if settings.capacity <= 0:
        raise ValueError(f"Capacity must be positive, got {settings.capacity}")
    if not 0 < settings.reserved_size < settings.capacity:
        raise ValueError(
            f"Reserved size must be in (0, {settings.capacity}), got {settings.reserved_size}"
        )
    if settings.program_overhead < 0:
        raise ValueError(f"Program overhead cannot be negative, got {settings.program_overhead}")
    return replace(settings, state_path=Path(settings.state_path))


def configure_logging(level: str = "INFO") -> logging.Logger:
    logger = logging.getLogger("partviz")
    logger.setLevel(getattr(logging, level.upper()))

    # Only one console handler, even across Streamlit reruns
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger


__all__ = [
    "DEFAULT_PROGRAMS",
    "PROGRAM_OVERHEAD",
    "RESERVED_NAME",
    "RESERVED_SIZE",
    "Settings",
    "TOTAL_MEM_MIB",
    "configure_logging",
    "load_settings",
]
