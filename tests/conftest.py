"""Shared fixtures for the partition visualizer tests."""

import pytest

from partviz.engine import FreeRegion, OccupiedRegion, Owner, RegionLedger


def _region(start, size, name=None, reserved=False, segment=0):
    if name is None:
        return FreeRegion(float(start), float(size))
    return OccupiedRegion(float(start), float(size), Owner(name, segment, reserved))


@pytest.fixture
def make_ledger():
    """
    Factory building a ledger from ``(start, size, name)`` tuples.

    ``name`` None means free; the name "S.O." marks the reserved region.
    """
    def factory(capacity, layout):
        ledger = RegionLedger(capacity)
        regions = [
            _region(start, size, name, reserved=(name == "S.O."))
            for start, size, name in layout
        ]
        ledger.replace_regions(regions)
        return ledger
    return factory


@pytest.fixture
def fragmented(make_ledger):
    """Capacity 16 with A(3,2) and B(10,1) and the reserved region at the top."""
    return make_ledger(16, [
        (0, 3, None),
        (3, 2, "A"),
        (5, 5, None),
        (10, 1, "B"),
        (11, 4, None),
        (15, 1, "S.O."),
    ])
