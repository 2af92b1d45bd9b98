"""
Tests for the engine module.

Covers the region ledger: reservation, allocation, release and merging,
wholesale replacement and the fragmentation metrics.
"""

import random

import pytest

from partviz.compactor import compact
from partviz.engine import (
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


class TestRegionLedgerInit:
    """Test cases for ledger creation and reservation."""

    def test_initial_single_free_region(self):
        """A new ledger is one free region spanning the capacity."""
        ledger = RegionLedger(16)

        assert ledger.snapshot() == (FreeRegion(0.0, 16.0),)
        assert ledger.reserved_region is None

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            RegionLedger(0)

    def test_reserve_protected_at_end(self):
        """The reserved region sits at the top with one free region below it."""
        ledger = RegionLedger(16)
        reserved = ledger.reserve_protected(1.0)

        assert reserved.start == 15.0
        assert reserved.reserved
        assert ledger.snapshot() == (
            FreeRegion(0.0, 15.0),
            OccupiedRegion(15.0, 1.0, Owner("S.O.", 0, True)),
        )

    @pytest.mark.parametrize("size", [0, -1, 16, 20])
    def test_reserve_protected_invalid_size(self, size):
        ledger = RegionLedger(16)
        with pytest.raises(ValueError):
            ledger.reserve_protected(size)
        assert ledger.snapshot() == (FreeRegion(0.0, 16.0),)

    def test_reserve_twice_replaces_previous(self):
        """Reserving again never leaves two reserved regions."""
        ledger = RegionLedger(16)
        ledger.reserve_protected(1.0)
        ledger.reserve_protected(2.0)

        snapshot = ledger.snapshot()
        assert sum(1 for r in snapshot if r.reserved) == 1
        assert snapshot[-1].start == 14.0 and snapshot[-1].size == 2.0
        assert snapshot[0] == FreeRegion(0.0, 14.0)
        ledger.check_invariants()

    def test_reserve_fails_when_top_is_occupied(self, make_ledger):
        ledger = make_ledger(16, [(0, 14, None), (14, 2, "A")])
        before = ledger.snapshot()

        with pytest.raises(InsufficientSpace):
            ledger.reserve_protected(1.0)
        assert ledger.snapshot() == before


class TestAllocate:
    """Test cases for RegionLedger.allocate."""

    def test_split_region(self):
        """Allocating less than a region splits it into occupied + free."""
        ledger = RegionLedger(16)
        ledger.reserve_protected(1.0)

        region = ledger.allocate(0, Owner("Chrome"), 0.9)

        assert region == OccupiedRegion(0.0, 0.9, Owner("Chrome"))
        assert ledger[1] == FreeRegion(0.9, 14.1)
        assert len(ledger) == 3
        ledger.check_invariants()

    def test_exact_fit_in_place(self, make_ledger):
        ledger = make_ledger(10, [(0, 4, None), (4, 6, "A")])

        ledger.allocate(0, Owner("B"), 4)

        assert len(ledger) == 2
        assert ledger[0] == OccupiedRegion(0.0, 4.0, Owner("B"))

    def test_region_not_free(self, fragmented):
        before = fragmented.snapshot()

        with pytest.raises(RegionNotFree) as exc_info:
            fragmented.allocate(1, Owner("C"), 1)

        assert exc_info.value.index == 1
        assert isinstance(exc_info.value, PartitionError)
        assert fragmented.snapshot() == before

    def test_insufficient_space(self, fragmented):
        before = fragmented.snapshot()

        with pytest.raises(InsufficientSpace) as exc_info:
            fragmented.allocate(0, Owner("C"), 3.5)

        assert exc_info.value.requested == 3.5
        assert exc_info.value.available == 3.0
        assert fragmented.snapshot() == before

    def test_rejected_calls_change_nothing(self, fragmented):
        """Checks run before any region or log entry is touched."""
        before = fragmented.snapshot()
        log_length = len(fragmented.event_log)

        for index, size in [(1, 1), (0, 3.5), (42, 1), (0, 0)]:
            with pytest.raises((PartitionError, IndexError, ValueError)):
                fragmented.allocate(index, Owner("C"), size)

        assert fragmented.snapshot() == before
        assert len(fragmented.event_log) == log_length

    def test_index_out_of_range(self, fragmented):
        with pytest.raises(IndexError):
            fragmented.allocate(42, Owner("C"), 1)

    def test_reserved_owner_rejected(self):
        ledger = RegionLedger(16)
        with pytest.raises(ValueError):
            ledger.allocate(0, Owner("S.O.", reserved=True), 1)

    def test_non_positive_size_rejected(self):
        ledger = RegionLedger(16)
        with pytest.raises(ValueError):
            ledger.allocate(0, Owner("A"), 0)

    def test_real_sizes_stay_contiguous(self):
        """Sums like 0.7 + 0.2 do not leave gaps."""
        ledger = RegionLedger(16)
        for name in ("A", "B", "C"):
            ledger.allocate(len(ledger) - 1, Owner(name), 0.7 + 0.2)

        ledger.check_invariants()
        assert ledger[-1].start == 2.7


class TestRelease:
    """Test cases for release and merging."""

    def test_release_merges_both_neighbours(self):
        """Releasing between two free regions yields one merged free region."""
        ledger = RegionLedger(10)
        ledger.allocate(0, Owner("A"), 2)
        ledger.allocate(1, Owner("B"), 3)
        ledger.allocate(2, Owner("C"), 1)

        assert ledger.release_by_owner("A")
        assert ledger.release_by_owner("C")
        assert ledger.snapshot() == (
            FreeRegion(0.0, 2.0),
            OccupiedRegion(2.0, 3.0, Owner("B")),
            FreeRegion(5.0, 5.0),
        )

        assert ledger.release_by_owner("B")
        assert ledger.snapshot() == (FreeRegion(0.0, 10.0),)

    def test_release_unknown_program(self, fragmented):
        before = fragmented.snapshot()

        assert fragmented.release_by_owner("Nope") is False
        assert fragmented.snapshot() == before

    def test_release_never_frees_reserved(self, fragmented):
        assert fragmented.release_by_owner("S.O.") is False
        assert fragmented.reserved_region is not None

    def test_release_all_regions_of_owner(self, make_ledger):
        ledger = make_ledger(10, [(0, 2, "A"), (2, 3, "B"), (5, 2, "A"), (7, 3, None)])

        assert ledger.release_by_owner("A")
        assert ledger.snapshot() == (
            FreeRegion(0.0, 2.0),
            OccupiedRegion(2.0, 3.0, Owner("B")),
            FreeRegion(5.0, 5.0),
        )

    def test_release_by_segment(self):
        ledger = RegionLedger(10)
        ledger.allocate(0, Owner("A", 0), 2)
        ledger.allocate(1, Owner("A", 1), 2)

        assert ledger.release_by_segment("A", 1)
        assert ledger.snapshot() == (
            OccupiedRegion(0.0, 2.0, Owner("A", 0)),
            FreeRegion(2.0, 8.0),
        )
        assert ledger.release_by_segment("A", 1) is False

    def test_merge_does_not_cross_reserved(self, make_ledger):
        ledger = make_ledger(10, [(0, 4, "A"), (4, 1, "S.O."), (5, 5, None)])

        ledger.release_by_owner("A")

        assert len(ledger) == 3
        assert ledger[1].reserved


class TestReplaceRegions:
    """Test cases for validated wholesale replacement."""

    @pytest.mark.parametrize("regions", [
        [FreeRegion(0.0, 4.0), FreeRegion(5.0, 11.0)],
        [FreeRegion(0.0, 8.0), OccupiedRegion(4.0, 12.0, Owner("A"))],
        [FreeRegion(0.0, 8.0), FreeRegion(8.0, 8.0)],
        [FreeRegion(0.0, 10.0)],
        [OccupiedRegion(0.0, 0.0, Owner("A")), FreeRegion(0.0, 16.0)],
        [
            OccupiedRegion(0.0, 8.0, Owner("S.O.", reserved=True)),
            OccupiedRegion(8.0, 8.0, Owner("S.O.", reserved=True)),
        ],
        [],
    ])
    def test_invalid_layouts_rejected(self, regions):
        ledger = RegionLedger(16)
        with pytest.raises(LedgerCorrupted):
            ledger.replace_regions(regions)
        assert ledger.snapshot() == (FreeRegion(0.0, 16.0),)


class TestLedgerMetrics:
    """Test cases for ledger_metrics."""

    def test_metrics_fragmented(self, fragmented):
        metrics = ledger_metrics(fragmented.snapshot(), fragmented.capacity)

        assert metrics["used"] == 4.0
        assert metrics["free"] == 12.0
        assert metrics["free_regions"] == 3
        assert metrics["largest_free"] == 5.0
        assert metrics["percent_used"] == 25
        assert metrics["external_ratio"] == round(1 - 5 / 12, 4)

    def test_metrics_full(self, make_ledger):
        ledger = make_ledger(4, [(0, 3, "A"), (3, 1, "S.O.")])
        metrics = ledger_metrics(ledger.snapshot(), ledger.capacity)

        assert metrics["free"] == 0
        assert metrics["free_regions"] == 0
        assert metrics["external_ratio"] == 0.0
        assert metrics["percent_used"] == 100

    def test_metrics_have_no_side_effect(self, fragmented):
        before = fragmented.snapshot()
        ledger_metrics(before, fragmented.capacity)
        assert fragmented.snapshot() == before


class TestInvariantsUnderRandomOperations:
    """Random allocate/release/compact sequences keep the ledger well formed."""

    @pytest.mark.parametrize("seed", [1, 7, 42])
    def test_random_sequence(self, seed):
        rng = random.Random(seed)
        ledger = RegionLedger(16)
        ledger.reserve_protected(1.0)
        names = [f"P{i}" for i in range(8)]

        for _ in range(300):
            op = rng.random()
            if op < 0.55:
                free = [i for i, r in enumerate(ledger.snapshot()) if r.is_free]
                if free:
                    index = rng.choice(free)
                    size = min(ledger[index].size, rng.choice([0.3, 0.9, 1.1, 2.5, 4.0]))
                    ledger.allocate(index, Owner(rng.choice(names)), size)
            elif op < 0.9:
                ledger.release_by_owner(rng.choice(names))
            else:
                compact(ledger)

            ledger.check_invariants()
            assert sum(r.size for r in ledger.snapshot()) == pytest.approx(16.0)
            assert ledger.reserved_region.start == 15.0
