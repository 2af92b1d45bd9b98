# compactor.py

import logging
from typing import List, Tuple

from .engine import FreeRegion, Region, RegionLedger, moved, quantize

logger = logging.getLogger(__name__)


def compacted_regions(ledger: RegionLedger) -> List[Region]:
    """
    Build the compacted layout without touching the ledger.

    Occupied regions slide up toward the top of memory, keeping their
    address order, and end right below the reserved region. All free space
    becomes a single region starting at 0.
    """
    regions = ledger.snapshot()
    capacity = ledger.capacity

    reserved = next((r for r in regions if r.reserved), None)
    reserved_size = reserved.size if reserved is not None else 0.0

    occupied = sorted(
        (r for r in regions if not r.is_free and not r.reserved),
        key=lambda r: r.start,
    )

    cursor = quantize(capacity - reserved_size - sum(r.size for r in occupied))
    new_regions: List[Region] = []

    if cursor > 0:
        new_regions.append(FreeRegion(0.0, cursor))

    for region in occupied:
        new_regions.append(moved(region, cursor))
        cursor = quantize(cursor + region.size)

    if reserved is not None:
        new_regions.append(moved(reserved, capacity - reserved_size))
    else:
        used = quantize(sum(r.size for r in new_regions))
        if used < capacity:
            new_regions.append(FreeRegion(used, quantize(capacity - used)))

    return new_regions


def compact(ledger: RegionLedger) -> Tuple[Region, ...]:
    """Compact ``ledger`` in place and return the new snapshot."""
    before = sum(1 for r in ledger.snapshot() if r.is_free)
    ledger.replace_regions(compacted_regions(ledger), reason="Compacted")
    logger.debug("Compacted ledger (%d free regions before)", before)
    return ledger.snapshot()
