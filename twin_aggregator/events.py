"""
Event parsing and filtering.

ADT routes twin changes to Event Grid as:

    {
        "eventType": "Microsoft.DigitalTwins.Twin.Update",
        "subject": "sensor-1",
        "data": {
            "data": {
                "modelId": "dtmi:ttnlwstack:sensorA;1",
                "patch": [
                    {"value": {"temp": 21.5}, "path": "/decodedPayload", "op": "replace"}
                ]
            },
            "contenttype": "application/json"
        }
    }

The inner "data" envelope is optional; modelId may also sit directly
under "data".
"""

import json
from typing import Any, Dict, List, Optional

from .exceptions import MalformedEventError
from .models import ChangeEvent

_MISSING = object()


def _event_body(data: Any) -> Dict[str, Any]:
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except ValueError:
            return {}
    if not isinstance(data, dict):
        return {}
    if "modelId" not in data and isinstance(data.get("data"), dict):
        return data["data"]
    return data


def parse_event(message: Dict[str, Any]) -> ChangeEvent:
    """
    Build a ChangeEvent from an Event Grid event dict.

    Raises:
        MalformedEventError: If the subject or the model id is missing
    """
    if not isinstance(message, dict):
        raise MalformedEventError("Event is not a JSON object")

    subject = message.get("subject")
    if not subject or not isinstance(subject, str):
        raise MalformedEventError("Event has no subject")

    body = _event_body(message.get("data"))
    model_id = body.get("modelId")
    if not model_id or not isinstance(model_id, str):
        raise MalformedEventError("Event data has no modelId", twin_id=subject)

    return ChangeEvent(
        event_type=message.get("eventType", "") or "",
        subject=subject,
        model_id=model_id,
        raw_payload=body,
    )


def patch_operations(event: ChangeEvent) -> Optional[List[Dict[str, Any]]]:
    """The JSON Patch carried by the event, or None if it has none."""
    patch = event.raw_payload.get("patch")
    if not isinstance(patch, list):
        return None
    return [op for op in patch if isinstance(op, dict)]


def is_sensor_event(event: ChangeEvent, model_prefix: str) -> bool:
    return event.model_id.startswith(model_prefix)


def is_derived_update(event: ChangeEvent, property_name: str) -> bool:
    """
    True if the event reports a write of the derived property itself.

    Processing those would feed the aggregator its own writes forever.
    """
    patch = patch_operations(event)
    if patch is None:
        return property_name in json.dumps(event.raw_payload, default=str)

    path = f"/{property_name}"
    return any(
        str(op.get("path", "")) == path or str(op.get("path", "")).startswith(path + "/")
        for op in patch
    )


def expected_property_value(event: ChangeEvent, property_name: str) -> Any:
    """
    Value the event's patch wrote to a top-level property.

    Returns a sentinel (see has_value) when the patch does not set it.
    """
    path = f"/{property_name}"
    for op in reversed(patch_operations(event) or []):
        if op.get("path") == path and op.get("op") in ("add", "replace") and "value" in op:
            return op["value"]
    return _MISSING


def has_value(value: Any) -> bool:
    return value is not _MISSING
