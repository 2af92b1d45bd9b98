# fits.py
"""
Fit selectors for the dynamic partition ledger.

Each selector returns the index of the free region to allocate from, or
``None`` when nothing fits. ``None`` is an ordinary outcome that callers
handle (optionally by compacting and retrying), not an error.

Ties are broken toward the larger start address, i.e. the region closest
to the reserved system region at the top of memory.
"""

from enum import Enum
from typing import Optional, Sequence

from .engine import Region, RegionLedger, quantize


class FitStrategy(str, Enum):
    FIRST_FIT = "First-Fit"
    BEST_FIT = "Best-Fit"
    WORST_FIT = "Worst-Fit"

    @property
    def key(self) -> str:
        return self.value.lower()


def _regions(ledger) -> Sequence[Region]:
    if isinstance(ledger, RegionLedger):
        return ledger.snapshot()
    return ledger


def _qualifies(region: Region, size: float) -> bool:
    return region.is_free and not region.reserved and region.size >= size


# -----------------------------
# Algorithms
# -----------------------------
def first_fit(ledger, requested_size: float) -> Optional[int]:
    """Scan from the highest address down and take the first region that fits."""
    blocks = _regions(ledger)
    size = quantize(requested_size)
    for i in range(len(blocks) - 1, -1, -1):
        if _qualifies(blocks[i], size):
            return i
    return None


def best_fit(ledger, requested_size: float) -> Optional[int]:
    blocks = _regions(ledger)
    size = quantize(requested_size)
    best = None
    best_frag = float("inf")

    for i, block in enumerate(blocks):
        if not _qualifies(block, size):
            continue
        frag = quantize(block.size - size)
        if frag < best_frag or (frag == best_frag and block.start > blocks[best].start):
            best_frag = frag
            best = i

    return best


def worst_fit(ledger, requested_size: float) -> Optional[int]:
    blocks = _regions(ledger)
    size = quantize(requested_size)
    worst = None
    worst_frag = -1.0

    for i, block in enumerate(blocks):
        if not _qualifies(block, size):
            continue
        frag = quantize(block.size - size)
        if frag > worst_frag or (frag == worst_frag and block.start > blocks[worst].start):
            worst_frag = frag
            worst = i

    return worst


SELECTORS = {
    FitStrategy.FIRST_FIT: first_fit,
    FitStrategy.BEST_FIT: best_fit,
    FitStrategy.WORST_FIT: worst_fit,
}


def select(strategy, ledger, requested_size: float) -> Optional[int]:
    """Dispatch to the selector for ``strategy`` (enum member or its label)."""
    return SELECTORS[FitStrategy(strategy)](ledger, requested_size)
