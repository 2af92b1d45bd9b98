"""
Placement engine and simulation session.

A ``PartitionSimulator`` drives one ledger with one fit strategy, with or
without compaction on failure. A ``SimulationSession`` owns the six
simulators compared side by side (three strategies, each with and without
compaction) together with the catalog of programs that can be placed.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from .compactor import compact
from .config import DEFAULT_PROGRAMS, Settings, load_settings
from .engine import Owner, Region, RegionLedger, ledger_metrics, quantize
from .fits import FitStrategy, select

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgramDefinition:
    """
    A program that can be loaded into memory.

    Attributes:
        name (str): Program name, used as the owner of its region
        segments (Tuple[float, ...]): Segment sizes in MiB
        overhead (float): Fixed heap/stack allowance added on placement
    """
    name: str
    segments: Tuple[float, ...]
    overhead: float = 0.2

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValueError("Program name cannot be empty")
        if not self.segments:
            raise ValueError(f"Program {self.name} has no segments")
        if any(s <= 0 for s in self.segments):
            raise ValueError(f"Program {self.name} has a non-positive segment size")
        object.__setattr__(self, "segments", tuple(float(s) for s in self.segments))

    @property
    def requested_size(self) -> float:
        # Segments are placed as one contiguous block
        return quantize(sum(self.segments) + self.overhead)


@dataclass(frozen=True)
class PlacementResult:
    success: bool
    placed_at: Optional[float] = None
    compacted: bool = False


def variant_key(strategy, allow_compaction: bool) -> str:
    key = FitStrategy(strategy).key
    return f"{key}+compaction" if allow_compaction else key


class PartitionSimulator:
    """One ledger driven by one fit strategy."""

    def __init__(
        self,
        strategy=FitStrategy.FIRST_FIT,
        allow_compaction: bool = False,
        capacity: float = 16.0,
        reserved_size: Optional[float] = 1.0,
        reserved_name: str = "S.O.",
    ):
        self.strategy = FitStrategy(strategy)
        self.allow_compaction = allow_compaction
        self.reserved_size = reserved_size
        self.reserved_name = reserved_name
        self.ledger = RegionLedger(capacity)
        self.reset()

    @property
    def key(self) -> str:
        return variant_key(self.strategy, self.allow_compaction)

    @property
    def label(self) -> str:
        mode = "With Compaction" if self.allow_compaction else "No Compaction"
        return f"{mode} - {self.strategy.value}"

    def reset(self):
        self.ledger.reset()
        if self.reserved_size:
            self.ledger.reserve_protected(self.reserved_size, self.reserved_name)

    def set_strategy(self, strategy):
        self.strategy = FitStrategy(strategy)

    # -----------------------------
    # Placement
    # -----------------------------
    def place(self, program: ProgramDefinition) -> PlacementResult:
        size = program.requested_size
        index = select(self.strategy, self.ledger, size)
        compacted = False

        if index is None and self.allow_compaction:
            compact(self.ledger)
            compacted = True
            index = select(self.strategy, self.ledger, size)

        if index is None:
            self.ledger.event_log.append(
                f"No fit: {program.name} ({size} MiB) with {self.strategy.value}"
            )
            logger.info("%s: no region fits %s (%s MiB)", self.key, program.name, size)
            return PlacementResult(False, None, compacted)

        region = self.ledger.allocate(index, Owner(program.name, 0), size)
        logger.debug("%s: placed %s at %s", self.key, program.name, region.start)
        return PlacementResult(True, region.start, compacted)

    def release(self, program_name: str) -> bool:
        return self.ledger.release_by_owner(program_name)

    def release_segment(self, program_name: str, segment_index: int) -> bool:
        return self.ledger.release_by_segment(program_name, segment_index)

    def compact(self) -> Tuple[Region, ...]:
        return compact(self.ledger)

    def snapshot(self) -> Tuple[Region, ...]:
        return self.ledger.snapshot()

    def metrics(self) -> Dict[str, float]:
        return ledger_metrics(self.ledger.snapshot(), self.ledger.capacity)


class SimulationSession:
    """
    Six simulators plus the program catalog.

    Variants are keyed by ``variant_key``: ``first-fit``, ``best-fit``,
    ``worst-fit`` and the same names with a ``+compaction`` suffix.
    """

    def __init__(self, settings: Optional[Settings] = None,
                 programs: Optional[Iterable[ProgramDefinition]] = None):
        self.settings = settings or load_settings()
        self._simulators: Dict[str, PartitionSimulator] = {}
        for allow_compaction in (False, True):
            for strategy in FitStrategy:
                sim = PartitionSimulator(
                    strategy,
                    allow_compaction,
                    capacity=self.settings.capacity,
                    reserved_size=self.settings.reserved_size,
                    reserved_name=self.settings.reserved_name,
                )
                self._simulators[sim.key] = sim

        self._programs: Dict[str, ProgramDefinition] = {}
        if programs is None:
            for name, segments in DEFAULT_PROGRAMS.items():
                self.add_program(name, segments)
        else:
            for program in programs:
                self._add(program)

    # -----------------------------
    # Catalog
    # -----------------------------
    @property
    def programs(self) -> List[ProgramDefinition]:
        return list(self._programs.values())

    def program(self, name: str) -> ProgramDefinition:
        if name not in self._programs:
            raise KeyError(f"Unknown program: {name}")
        return self._programs[name]

    def add_program(self, name: str, segments: Iterable[float]) -> ProgramDefinition:
        name = name.strip() if name else name
        program = ProgramDefinition(name, tuple(segments), self.settings.program_overhead)
        return self._add(program)

    def _add(self, program: ProgramDefinition) -> ProgramDefinition:
        if program.name == self.settings.reserved_name:
            raise ValueError(f"{program.name} is the reserved system region")
        if program.name in self._programs:
            raise ValueError(f"Program {program.name} already exists")
        self._programs[program.name] = program
        return program

    def remove_program(self, name: str) -> bool:
        return self._programs.pop(name, None) is not None

    # -----------------------------
    # Variants
    # -----------------------------
    def variants(self) -> List[PartitionSimulator]:
        return list(self._simulators.values())

    def simulator(self, key: str) -> PartitionSimulator:
        if key not in self._simulators:
            raise KeyError(f"Unknown variant: {key}")
        return self._simulators[key]

    def reset(self):
        for sim in self._simulators.values():
            sim.reset()
        logger.info("Session reset")

    def place_everywhere(self, name: str) -> Dict[str, PlacementResult]:
        program = self.program(name)
        results = {key: sim.place(program) for key, sim in self._simulators.items()}
        placed = sum(1 for r in results.values() if r.success)
        logger.info("Placed %s in %d/%d variants", name, placed, len(results))
        return results

    def release_everywhere(self, name: str) -> Dict[str, bool]:
        return {key: sim.release(name) for key, sim in self._simulators.items()}

    def metrics(self) -> Dict[str, Dict[str, float]]:
        return {key: sim.metrics() for key, sim in self._simulators.items()}
