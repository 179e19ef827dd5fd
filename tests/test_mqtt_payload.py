from __future__ import annotations

import json

from fleetsync._mqtt import build_client_id, decode_update_payload
from fleetsync.config import FleetConfig


def _encode(value: object) -> bytes:
    return json.dumps(value).encode("utf-8")


def test_bare_fragment_is_returned_as_is() -> None:
    fragment = {"vehicleId": "B1", "safeSpeed": 55}

    assert decode_update_payload(_encode(fragment)) == fragment


def test_update_envelope_is_unwrapped() -> None:
    payload = _encode({"event": "bus_update", "data": {"vehicle_id": "B2", "passenger_count": 12}})

    assert decode_update_payload(payload) == {"vehicle_id": "B2", "passenger_count": 12}


def test_other_events_are_ignored() -> None:
    assert decode_update_payload(_encode({"event": "heartbeat", "data": {"vehicle_id": "B1"}})) is None


def test_custom_update_event_name() -> None:
    payload = _encode({"event": "vehicle", "data": {"vehicle_id": "B1"}})

    assert decode_update_payload(payload, update_event="vehicle") == {"vehicle_id": "B1"}


def test_non_object_payloads_are_rejected() -> None:
    assert decode_update_payload(b"not json") is None
    assert decode_update_payload(b"\xff\xfe") is None
    assert decode_update_payload(_encode(["B1"])) is None
    assert decode_update_payload(_encode({"event": "bus_update", "data": "B1"})) is None


def test_client_id_prefers_configured_value() -> None:
    assert build_client_id(FleetConfig(mqtt_client_id="dashboard-7")) == "dashboard-7"

    generated = build_client_id(FleetConfig())
    assert generated.startswith("fleetsync-")
    assert len(generated) == len("fleetsync-") + 8
