"""Deterministic in-memory fleet store.

This is the only component allowed to mutate the fleet view. Full snapshots
and partial push updates are merged with intentionally different rules:

* a snapshot *replaces* the records it lists (it is complete for them);
* a partial update *merges* the fields it carries into the existing record
  and marks the vehicle online.

Calls are applied strictly in the order they are made, never by timestamps
embedded in the payloads.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from fleetsync.exceptions import FleetMalformedFragmentError
from fleetsync.models.vehicle import VehicleFragment, VehicleRecord, VehicleStatus
from fleetsync.state.policy import matches_search, should_evict, snapshot_status

_logger = logging.getLogger(__name__)

SnapshotItem = VehicleRecord | Mapping[str, Any]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _as_snapshot_record(item: SnapshotItem) -> VehicleRecord | None:
    if isinstance(item, VehicleRecord):
        record = item
    else:
        try:
            record = VehicleRecord.model_validate(dict(item))
        except (ValidationError, TypeError, ValueError):
            _logger.warning("Dropping snapshot entry without a valid vehicle_id: %r", item)
            return None
    return record.model_copy(update={"status": snapshot_status(record)})


def _field_names_by_key() -> dict[str, str]:
    names: dict[str, str] = {}
    for name, info in VehicleRecord.model_fields.items():
        names[name] = name
        if info.alias:
            names[info.alias] = name
    return names


_FIELD_BY_KEY = _field_names_by_key()
_UNCLEARABLE = frozenset({"vehicle_id", "status"})


def _cleared_fields(fragment: Mapping[str, Any]) -> set[str]:
    """Fields a fragment sends as explicit ``null``."""
    cleared: set[str] = set()
    for key, value in fragment.items():
        name = _FIELD_BY_KEY.get(key) if isinstance(key, str) else None
        if value is None and name is not None and name not in _UNCLEARABLE:
            cleared.add(name)
    return cleared


def _fragment_patch(fragment: Any) -> tuple[str, dict[str, Any], set[str]]:
    """Return ``(vehicle_id, patch, cleared)`` for a fragment, or raise if it has no id."""
    if isinstance(fragment, VehicleRecord):
        return fragment.vehicle_id, fragment.patch(), set()
    if not isinstance(fragment, Mapping):
        raise FleetMalformedFragmentError(
            f"Partial update must be a mapping or record, got {type(fragment).__name__}",
            payload=fragment,
        )
    try:
        parsed = VehicleFragment.model_validate(dict(fragment))
    except ValidationError as exc:
        raise FleetMalformedFragmentError(
            f"Partial update has no usable vehicle_id: {fragment!r}",
            payload=fragment,
        ) from exc
    patch = parsed.patch()
    return parsed.vehicle_id, patch, _cleared_fields(fragment) - patch.keys()


def merge_fragment(
    records: Mapping[str, VehicleRecord],
    fragment: VehicleRecord | Mapping[str, Any],
) -> VehicleRecord:
    """Return the entry of *records* the fragment targets, updated and marked online.

    Fields the fragment carries overwrite, fields it does not carry are
    left untouched. A field sent as explicit ``null`` is cleared;
    placeholder strings such as ``"--"`` are not values and change nothing.

    Raises
    ------
    FleetMalformedFragmentError
        The fragment has no vehicle id.
    """
    vehicle_id, patch, cleared = _fragment_patch(fragment)
    patch.pop("status", None)

    existing = records.get(vehicle_id)
    merged: dict[str, Any] = existing.patch() if existing is not None else {}
    for name in cleared:
        merged.pop(name, None)
    merged.update(patch)
    merged["vehicle_id"] = vehicle_id
    merged["status"] = VehicleStatus.ONLINE
    return VehicleRecord.model_validate(merged)


class FleetStore:
    """Keyed view of fleet state, reconciled from snapshots and push updates.

    All reads are synchronous and perform no I/O. Records are immutable, so
    the dicts returned by :meth:`view` can be handed out freely; a later
    mutation swaps in new record objects instead of changing old ones.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        evict_after: float | None = None,
    ) -> None:
        self._clock = clock
        self._evict_after = evict_after
        self._vehicles: dict[str, VehicleRecord] = {}
        self._missed: dict[str, int] = {}
        self._contributed_at: dict[str, datetime] = {}
        self._has_snapshot = False

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def apply_snapshot(self, records: Iterable[SnapshotItem]) -> None:
        """Replace the view with a full listing from the backend.

        Listed vehicles take the snapshot's record verbatim, online only if
        the snapshot says so. Vehicles the snapshot omits are kept, marked
        offline, unless nothing has listed them for more than ``evict_after``
        seconds of store clock time. Eviction depends on that age, not on
        how many snapshots were applied, so applying the same snapshot twice
        in a row leaves the same view.
        """
        now = self._clock()
        incoming: dict[str, VehicleRecord] = {}
        for item in records:
            record = _as_snapshot_record(item)
            if record is not None:
                # Duplicates inside one listing: the last entry wins.
                incoming[record.vehicle_id] = record

        view = dict(incoming)
        missed: dict[str, int] = {}
        for vehicle_id, previous in self._vehicles.items():
            if vehicle_id in incoming:
                continue
            count = self._missed.get(vehicle_id, 0) + 1
            last_seen = self._contributed_at.get(vehicle_id, now)
            absent_for = (now - last_seen).total_seconds()
            if should_evict(absent_for, self._evict_after):
                _logger.debug("Evicting %s, unlisted for %.1fs", vehicle_id, absent_for)
                self._contributed_at.pop(vehicle_id, None)
                continue
            if previous.status != VehicleStatus.OFFLINE:
                previous = previous.model_copy(update={"status": VehicleStatus.OFFLINE})
            view[vehicle_id] = previous
            missed[vehicle_id] = count

        for vehicle_id in incoming:
            self._contributed_at[vehicle_id] = now

        self._vehicles = view
        self._missed = missed
        self._has_snapshot = True
        _logger.debug("Applied snapshot: %d listed, %d retained offline", len(incoming), len(missed))

    def apply_partial_update(self, fragment: VehicleRecord | Mapping[str, Any]) -> VehicleRecord:
        """Merge one push update into the view and return the resulting record.

        Merge rules are those of :func:`merge_fragment`; the vehicle is
        marked online either way.

        Raises
        ------
        FleetMalformedFragmentError
            The fragment has no vehicle id; the view is left unchanged.
        """
        record = merge_fragment(self._vehicles, fragment)

        vehicle_id = record.vehicle_id
        self._vehicles[vehicle_id] = record
        self._missed.pop(vehicle_id, None)
        self._contributed_at[vehicle_id] = self._clock()
        return record

    def clear(self) -> None:
        """Forget everything; the next snapshot rebuilds the view from scratch."""
        self._vehicles = {}
        self._missed = {}
        self._contributed_at = {}
        self._has_snapshot = False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def view(self) -> dict[str, VehicleRecord]:
        """Current fleet view (a copy; records themselves are immutable)."""
        return dict(self._vehicles)

    def get(self, vehicle_id: str) -> VehicleRecord | None:
        return self._vehicles.get(vehicle_id)

    def vehicle_ids(self) -> list[str]:
        return list(self._vehicles)

    def __len__(self) -> int:
        return len(self._vehicles)

    def __contains__(self, vehicle_id: object) -> bool:
        return vehicle_id in self._vehicles

    @property
    def has_snapshot(self) -> bool:
        """False until the first snapshot was applied (initial loading state)."""
        return self._has_snapshot

    def missed_snapshots(self, vehicle_id: str) -> int:
        """Consecutive snapshots that did not list *vehicle_id*."""
        return self._missed.get(vehicle_id, 0)

    def last_contribution(self, vehicle_id: str) -> datetime | None:
        """Store-clock time of the latest snapshot or update that listed *vehicle_id*."""
        return self._contributed_at.get(vehicle_id)

    def counts(self) -> dict[VehicleStatus, int]:
        result = {VehicleStatus.ONLINE: 0, VehicleStatus.OFFLINE: 0}
        for record in self._vehicles.values():
            status = record.status if record.status is not None else VehicleStatus.OFFLINE
            result[status] += 1
        return result

    def filter(
        self,
        *,
        search: str | None = None,
        status: VehicleStatus | str | None = None,
    ) -> list[VehicleRecord]:
        """Records matching a free-text *search* and/or a *status*."""
        wanted = VehicleStatus(status) if status is not None else None
        result: list[VehicleRecord] = []
        for record in self._vehicles.values():
            if wanted is not None and record.status != wanted:
                continue
            if search and not matches_search(record, search):
                continue
            result.append(record)
        return result

    def with_position(self) -> list[VehicleRecord]:
        return [record for record in self._vehicles.values() if record.has_position]
