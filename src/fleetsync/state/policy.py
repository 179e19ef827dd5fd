"""Deterministic reconciliation policy.

This module intentionally contains *no* payload parsing. The models and the
ingestion layer are responsible for producing validated records.
"""

from __future__ import annotations

from fleetsync.models.vehicle import VehicleRecord, VehicleStatus


def snapshot_status(record: VehicleRecord) -> VehicleStatus:
    """A snapshot record is online only if the backend said so."""
    return VehicleStatus.ONLINE if record.status == VehicleStatus.ONLINE else VehicleStatus.OFFLINE


def should_evict(absent_for: float, evict_after: float | None) -> bool:
    """Whether a vehicle no source has listed for *absent_for* seconds leaves the view.

    ``None`` disables eviction: the vehicle stays, marked offline.
    """
    if evict_after is None:
        return False
    return absent_for > evict_after


def matches_search(record: VehicleRecord, term: str) -> bool:
    """Case-insensitive substring match on id, route and location."""
    needle = term.strip().lower()
    if not needle:
        return True
    for value in (record.vehicle_id, record.route_id, record.location_name):
        if value is not None and needle in value.lower():
            return True
    return False
