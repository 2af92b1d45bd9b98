"""
Saving and loading simulation sessions.

The state document is plain JSON::

    {
      "version": 1,
      "programs": [{"name": "Chrome", "segments": [0.5, 0.2]}, ...],
      "ledgers": {
        "first-fit": [{"start": 0, "size": 15, "free": true}, ...],
        ...
      }
    }

Region records use ``programName``, ``segIndex`` and ``reserved`` for
occupied regions. Loading repairs the reserved system region: it is
installed when missing and moved to the top of memory when misplaced.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from .config import Settings, load_settings
from .engine import (
    FreeRegion,
    InsufficientSpace,
    OccupiedRegion,
    Owner,
    Region,
    RegionLedger,
    merge_free_runs,
    moved,
    quantize,
)
from .simulator import ProgramDefinition, SimulationSession

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class StateFormatError(ValueError):
    """Raised when a persisted state document cannot be understood."""


# -----------------------------
# Regions
# -----------------------------
def region_to_record(region: Region) -> dict:
    record = {"start": region.start, "size": region.size, "free": region.is_free}
    if not region.is_free:
        record["programName"] = region.owner.program_name
        record["segIndex"] = region.owner.segment_index
        if region.reserved:
            record["reserved"] = True
    return record


def region_from_record(record: dict) -> Region:
    try:
        start = quantize(record["start"])
        size = quantize(record["size"])
        free = record.get("free", False)
        name = record.get("programName")
        seg_index = int(record.get("segIndex") or 0)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise StateFormatError(f"Invalid region record {record!r}: {e}")

    if not isinstance(free, bool):
        raise StateFormatError(f"Region flag \"free\" must be a boolean: {record!r}")
    if free:
        return FreeRegion(start, size)
    if not name:
        raise StateFormatError(f"Occupied region without programName: {record!r}")

    # Older documents flag the system region as "protected"
    reserved = record.get("reserved", record.get("protected", False))
    if not isinstance(reserved, bool):
        raise StateFormatError(f"Region flag \"reserved\" must be a boolean: {record!r}")
    return OccupiedRegion(start, size, Owner(str(name), seg_index, reserved))


def ledger_to_records(snapshot: Sequence[Region]) -> List[dict]:
    return [region_to_record(r) for r in snapshot]


def _restack(regions: Sequence[Region]) -> List[Region]:
    """Lay ``regions`` out back to back from address 0, keeping their order."""
    rebuilt: List[Region] = []
    cursor = 0.0
    for region in regions:
        rebuilt.append(moved(region, cursor))
        cursor = quantize(cursor + region.size)
    return merge_free_runs(rebuilt)


def ledger_from_records(
    records: Sequence[dict],
    capacity: float,
    reserved_size: float = 1.0,
    reserved_name: str = "S.O.",
) -> RegionLedger:
    """
    Rebuild a ledger from region records, repairing the reserved region.

    Records are sorted by start and adjacent free regions are merged. When
    more than one region is marked reserved, the first is kept and the rest
    become free. A reserved region that does not end at ``capacity`` is
    moved there and the other regions are laid out again from address 0.

    Raises:
        StateFormatError: If the records are malformed.
        LedgerCorrupted: If the repaired layout still breaks the ledger rules
            (gaps, overlaps or a span different from ``capacity``).
    """
    if not records:
        raise StateFormatError("Ledger has no regions")

    regions = sorted((region_from_record(r) for r in records), key=lambda r: r.start)

    reserved: Optional[OccupiedRegion] = None
    cleaned: List[Region] = []
    for region in regions:
        if region.reserved:
            if reserved is None:
                reserved = region
                continue
            logger.warning("Dropping duplicate reserved region at %s", region.start)
            region = FreeRegion(region.start, region.size)
        cleaned.append(region)

    ledger = RegionLedger(capacity)

    if reserved is None:
        ledger.replace_regions(merge_free_runs(cleaned), reason="Loaded")
        _install_reserved(ledger, reserved_size, reserved_name)
        return ledger

    at_top = regions[-1] is reserved and reserved.start == quantize(capacity - reserved.size)
    if at_top:
        layout = merge_free_runs(cleaned + [reserved])
    else:
        logger.warning("Reserved region at %s moved to the top of memory", reserved.start)
        layout = _restack(cleaned + [reserved])
    ledger.replace_regions(layout, reason="Loaded")
    return ledger


def _install_reserved(ledger: RegionLedger, size: float, name: str):
    logger.warning("No reserved region in saved ledger, installing %s MiB", size)
    try:
        ledger.reserve_protected(size, name)
    except InsufficientSpace:
        # Slide programs down so the top of memory is free
        occupied = [r for r in ledger.snapshot() if not r.is_free]
        used = quantize(sum(r.size for r in occupied))
        if quantize(ledger.capacity - used) < quantize(size):
            raise
        layout = _restack(occupied + [FreeRegion(used, quantize(ledger.capacity - used))])
        ledger.replace_regions(layout, reason="Restacked")
        ledger.reserve_protected(size, name)


# -----------------------------
# Sessions
# -----------------------------
def session_to_state(session: SimulationSession) -> dict:
    return {
        "version": STATE_VERSION,
        "programs": [
            {"name": p.name, "segments": list(p.segments)} for p in session.programs
        ],
        "ledgers": {
            sim.key: ledger_to_records(sim.snapshot()) for sim in session.variants()
        },
    }


def session_from_state(state: dict, settings: Optional[Settings] = None) -> SimulationSession:
    settings = settings or load_settings()
    if not isinstance(state, dict):
        raise StateFormatError("State document must be an object")

    programs = None
    if "programs" in state:
        try:
            programs = [
                ProgramDefinition(p["name"], tuple(p["segments"]), settings.program_overhead)
                for p in state["programs"]
            ]
        except (KeyError, TypeError) as e:
            raise StateFormatError(f"Invalid program definition: {e}")

    session = SimulationSession(settings, programs)

    for key, records in (state.get("ledgers") or {}).items():
        try:
            sim = session.simulator(key)
        except KeyError:
            logger.warning("Ignoring unknown ledger %s in saved state", key)
            continue
        sim.ledger = ledger_from_records(
            records,
            settings.capacity,
            settings.reserved_size,
            settings.reserved_name,
        )

    return session


def save_session(session: SimulationSession, path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(session_to_state(session), f, indent=2)
    logger.debug("Saved session to %s", path)
    return path


def load_session(path, settings: Optional[Settings] = None) -> Optional[SimulationSession]:
    """
    Load a session saved with ``save_session``.

    Returns:
        The session, or None when ``path`` does not exist.

    Raises:
        StateFormatError: If the file is not a valid state document.
    """
    path = Path(path)
    if not path.exists():
        return None

    try:
        with open(path, "r", encoding="utf-8") as f:
            state = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise StateFormatError(f"Invalid JSON in {path}: {e}")

    session = session_from_state(state, settings)
    logger.info("Loaded session from %s", path)
    return session


__all__ = [
    "StateFormatError",
    "ledger_from_records",
    "ledger_to_records",
    "load_session",
    "region_from_record",
    "region_to_record",
    "save_session",
    "session_from_state",
    "session_to_state",
]
