"""Dynamic memory partition simulator: First-Fit, Best-Fit and Worst-Fit with compaction."""

from .compactor import compact
from .engine import (
    FreeRegion,
    InsufficientSpace,
    LedgerCorrupted,
    OccupiedRegion,
    Owner,
    PartitionError,
    RegionLedger,
    RegionNotFree,
    ledger_metrics,
)
from .fits import FitStrategy, best_fit, first_fit, select, worst_fit
from .simulator import PartitionSimulator, PlacementResult, ProgramDefinition, SimulationSession

__all__ = [
    "FitStrategy",
    "FreeRegion",
    "InsufficientSpace",
    "LedgerCorrupted",
    "OccupiedRegion",
    "Owner",
    "PartitionError",
    "PartitionSimulator",
    "PlacementResult",
    "ProgramDefinition",
    "RegionLedger",
    "RegionNotFree",
    "SimulationSession",
    "best_fit",
    "compact",
    "first_fit",
    "ledger_metrics",
    "select",
    "worst_fit",
]
