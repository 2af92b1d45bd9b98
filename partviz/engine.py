# engine.py

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

# Sizes are MiB reals; every computed offset/size is rounded to this many
# decimals so contiguity can be compared exactly.
PRECISION = 6


def quantize(value: float) -> float:
    return round(float(value), PRECISION)


# -----------------------------
# Errors
# -----------------------------
class PartitionError(ValueError):
    """Base class for rejected ledger mutations."""


class RegionNotFree(PartitionError):
    def __init__(self, index: int, region: "OccupiedRegion"):
        self.index = index
        self.region = region
        super().__init__(
            f"Region {index} at {region.start} is occupied by {region.owner.program_name}"
        )


class InsufficientSpace(PartitionError):
    def __init__(self, requested: float, available: float):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Requested {requested} MiB but only {available} MiB available"
        )


class LedgerCorrupted(PartitionError):
    """Raised when a region list breaks contiguity, merging or reservation rules."""


# -----------------------------
# Regions
# -----------------------------
@dataclass(frozen=True)
class Owner:
    program_name: str
    segment_index: int = 0
    reserved: bool = False


@dataclass(frozen=True)
class FreeRegion:
    start: float
    size: float

    is_free = True
    reserved = False

    @property
    def end(self) -> float:
        return quantize(self.start + self.size)

    def __repr__(self):
        return f"[F|{self.start}|{self.size}]"


@dataclass(frozen=True)
class OccupiedRegion:
    start: float
    size: float
    owner: Owner

    is_free = False

    @property
    def end(self) -> float:
        return quantize(self.start + self.size)

    @property
    def reserved(self) -> bool:
        return self.owner.reserved

    def __repr__(self):
        state = "R" if self.reserved else "A"
        return f"[{state}|{self.start}|{self.size}|{self.owner.program_name}]"


Region = Union[FreeRegion, OccupiedRegion]


def moved(region: Region, start: float) -> Region:
    """Return a copy of ``region`` relocated to ``start``."""
    return replace(region, start=quantize(start))


def validate_regions(regions: Sequence[Region], capacity: float) -> None:
    """
    Check the ledger invariants over a full region list.

    Raises:
        LedgerCorrupted: On a gap, overlap, non-positive size, adjacent free
            regions, more than one reserved region or a wrong total span.
    """
    if not regions:
        raise LedgerCorrupted("Ledger has no regions")

    cursor = 0.0
    reserved_count = 0
    previous_free = False
    for i, region in enumerate(regions):
        if region.size <= 0:
            raise LedgerCorrupted(f"Region {i} has non-positive size {region.size}")
        if region.start != cursor:
            raise LedgerCorrupted(
                f"Region {i} starts at {region.start}, expected {cursor}"
            )
        if region.is_free and previous_free:
            raise LedgerCorrupted(f"Regions {i - 1} and {i} are both free")
        if region.reserved:
            reserved_count += 1
        previous_free = region.is_free
        cursor = region.end

    if reserved_count > 1:
        raise LedgerCorrupted(f"Found {reserved_count} reserved regions")
    if cursor != quantize(capacity):
        raise LedgerCorrupted(f"Regions span {cursor} MiB, capacity is {capacity}")


def merge_free_runs(regions: Sequence[Region]) -> List[Region]:
    merged: List[Region] = []
    for region in regions:
        if region.is_free and merged and merged[-1].is_free:
            last = merged[-1]
            merged[-1] = FreeRegion(last.start, quantize(last.size + region.size))
        else:
            merged.append(region)
    return merged


class RegionLedger:
    """
    Ordered list of contiguous regions covering ``[0, capacity)``.

    Every public mutation runs all of its checks before it changes any
    region, so a rejected call leaves the ledger as it was.
    """

    def __init__(self, capacity: float = 16.0):
        if capacity <= 0:
            raise ValueError(f"Capacity must be positive, got {capacity}")
        self.capacity = quantize(capacity)
        self.event_log: List[str] = []
        self.reset()

    def reset(self):
        self._regions: List[Region] = [FreeRegion(0.0, self.capacity)]
        self.event_log.append(f"Reset: {self.capacity} MiB free")

    # -----------------------------
    # Queries
    # -----------------------------
    def snapshot(self) -> Tuple[Region, ...]:
        return tuple(self._regions)

    def __len__(self):
        return len(self._regions)

    def __getitem__(self, index: int) -> Region:
        return self._regions[index]

    @property
    def reserved_region(self) -> Optional[OccupiedRegion]:
        return next((r for r in self._regions if r.reserved), None)

    def find(self, program_name: str) -> List[Tuple[int, OccupiedRegion]]:
        return [
            (i, r) for i, r in enumerate(self._regions)
            if not r.is_free and not r.reserved and r.owner.program_name == program_name
        ]

    def contains(self, program_name: str) -> bool:
        return bool(self.find(program_name))

    def check_invariants(self):
        validate_regions(self._regions, self.capacity)

    # -----------------------------
    # Reserved region
    # -----------------------------
    def reserve_protected(self, size: float, name: str = "S.O.") -> OccupiedRegion:
        size = quantize(size)
        if size <= 0 or size >= self.capacity:
            raise ValueError(
                f"Reserved size must be in (0, {self.capacity}), got {size}"
            )

        # Drop any previous reservation so the ledger never holds two.
        regions = [
            FreeRegion(r.start, r.size) if r.reserved else r for r in self._regions
        ]
        regions = merge_free_runs(regions)

        tail = regions[-1]
        if not tail.is_free or tail.size < size:
            available = tail.size if tail.is_free else 0.0
            raise InsufficientSpace(size, available)

        reserved = OccupiedRegion(
            quantize(self.capacity - size), size, Owner(name, 0, reserved=True)
        )
        head: List[Region] = []
        if tail.size > size:
            head.append(FreeRegion(tail.start, quantize(tail.size - size)))
        regions[-1:] = head + [reserved]

        self._regions = regions
        self.event_log.append(f"Reserved: {name} at {reserved.start} ({size} MiB)")
        logger.debug("Reserved %s MiB for %s at %s", size, name, reserved.start)
        return reserved

    # -----------------------------
    # Allocation
    # -----------------------------
    def allocate(self, index: int, owner: Owner, size: float) -> OccupiedRegion:
        size = quantize(size)
        if size <= 0:
            raise ValueError(f"Allocation size must be positive, got {size}")
        if owner.reserved:
            raise ValueError("Reserved regions are installed with reserve_protected")
        if index < 0 or index >= len(self._regions):
            raise IndexError(f"Region index {index} out of range")

        block = self._regions[index]
        if not block.is_free:
            raise RegionNotFree(index, block)
        if size > block.size:
            raise InsufficientSpace(size, block.size)

        allocated = OccupiedRegion(block.start, size, owner)

        # Perfect fit
        if size == block.size:
            self._regions[index] = allocated
        else:
            remaining = FreeRegion(quantize(block.start + size), quantize(block.size - size))
            self._regions[index:index + 1] = [allocated, remaining]

        self.event_log.append(
            f"Allocated: {owner.program_name} -> Region {index} at {block.start} ({size} MiB)"
        )
        return allocated

    # -----------------------------
    # Release
    # -----------------------------
    def release_by_owner(self, program_name: str) -> bool:
        released = False
        for i, region in enumerate(self._regions):
            if not region.is_free and not region.reserved and region.owner.program_name == program_name:
                self._regions[i] = FreeRegion(region.start, region.size)
                released = True

        if not released:
            self.event_log.append(f"Release: {program_name} not present")
            return False

        i = 0
        while i < len(self._regions):
            if self._regions[i].is_free:
                i = self._merge_adjacent_free(i)
            i += 1

        self.event_log.append(f"Released: {program_name}")
        return True

    def release_by_segment(self, program_name: str, segment_index: int) -> bool:
        for i, region in enumerate(self._regions):
            if (not region.is_free and not region.reserved
                    and region.owner.program_name == program_name
                    and region.owner.segment_index == segment_index):
                self._regions[i] = FreeRegion(region.start, region.size)
                self._merge_adjacent_free(i)
                self.event_log.append(f"Released: {program_name} segment {segment_index}")
                return True

        self.event_log.append(f"Release: {program_name} segment {segment_index} not present")
        return False

    def _merge_adjacent_free(self, index: int) -> int:
        """Fold free neighbours into the free region at ``index``; return its new index."""
        # merge left
        if index > 0 and self._regions[index - 1].is_free and self._regions[index].is_free:
            left = self._regions[index - 1]
            cur = self._regions[index]
            self._regions[index - 1:index + 1] = [
                FreeRegion(left.start, quantize(left.size + cur.size))
            ]
            index -= 1
        # merge right
        if (index < len(self._regions) - 1 and self._regions[index + 1].is_free
                and self._regions[index].is_free):
            cur = self._regions[index]
            right = self._regions[index + 1]
            self._regions[index:index + 2] = [
                FreeRegion(cur.start, quantize(cur.size + right.size))
            ]
        return index

    # -----------------------------
    # Wholesale replacement
    # -----------------------------
    def replace_regions(self, regions: Sequence[Region], reason: str = "Replaced"):
        regions = list(regions)
        validate_regions(regions, self.capacity)
        self._regions = regions
        self.event_log.append(f"{reason}: {len(regions)} regions")


# --------------------------------------
# Fragmentation Metrics
# --------------------------------------
def ledger_metrics(snapshot: Sequence[Region], capacity: float) -> Dict[str, float]:
    """
    Summarise a snapshot: used/free MiB, free region count and percent used.

    ``free`` is the total external fragmentation. ``external_ratio`` is
    ``1 - largest_free / free``: 0 when all free space is one region.
    """
    free_blocks = [r.size for r in snapshot if r.is_free]
    used = quantize(sum(r.size for r in snapshot if not r.is_free))
    free = quantize(sum(free_blocks))

    if free == 0:
        external_ratio = 0.0
        largest_free = 0.0
    else:
        largest_free = max(free_blocks)
        external_ratio = 1 - (largest_free / free)

    return {
        "used": used,
        "free": free,
        "free_regions": len(free_blocks),
        "largest_free": largest_free,
        "percent_used": int(used / capacity * 100 + 0.5),
        "external_ratio": round(external_ratio, 4),
    }
