import pytest

from conftest import SENSOR_MODEL, make_event
from twin_aggregator.events import (
    expected_property_value,
    has_value,
    is_derived_update,
    is_sensor_event,
    parse_event,
    patch_operations,
)
from twin_aggregator.exceptions import MalformedEventError


class TestParseEvent:
    def test_nested_adt_envelope(self):
        event = parse_event(make_event(patch=[]))

        assert event.subject == "sensor-1"
        assert event.model_id == SENSOR_MODEL
        assert event.event_type == "Microsoft.DigitalTwins.Twin.Update"
        assert event.raw_payload["patch"] == []

    def test_flat_data(self):
        event = parse_event(make_event(nested=False))

        assert event.model_id == SENSOR_MODEL

    def test_data_as_json_string(self):
        message = {"subject": "sensor-1", "data": '{"modelId": "dtmi:ttnlwstack:x;1"}'}

        assert parse_event(message).model_id == "dtmi:ttnlwstack:x;1"

    @pytest.mark.parametrize("message", [
        {"data": {"modelId": SENSOR_MODEL}},
        {"subject": "", "data": {"modelId": SENSOR_MODEL}},
        {"subject": "sensor-1", "data": {}},
        {"subject": "sensor-1"},
        {"subject": "sensor-1", "data": "not json"},
        "not a dict",
    ])
    def test_malformed(self, message):
        with pytest.raises(MalformedEventError):
            parse_event(message)


class TestFilters:
    def test_sensor_prefix(self):
        event = parse_event(make_event())

        assert is_sensor_event(event, "dtmi:ttnlwstack")
        assert not is_sensor_event(event, "dtmi:exhibition")

    def test_environmental_info_patch_is_derived(self):
        event = parse_event(make_event(patch=[
            {"op": "replace", "path": "/environmental_info", "value": {"temperature": 21}}
        ]))

        assert is_derived_update(event, "environmental_info")

    def test_nested_environmental_info_path_is_derived(self):
        event = parse_event(make_event(patch=[
            {"op": "replace", "path": "/environmental_info/temperature", "value": 21}
        ]))

        assert is_derived_update(event, "environmental_info")

    def test_decoded_payload_patch_is_not_derived(self):
        event = parse_event(make_event(patch=[
            {"op": "replace", "path": "/decodedPayload", "value": {"temp": 21}}
        ]))

        assert not is_derived_update(event, "environmental_info")

    def test_similar_property_name_is_not_derived(self):
        event = parse_event(make_event(patch=[
            {"op": "add", "path": "/environmental_info_history", "value": []}
        ]))

        assert not is_derived_update(event, "environmental_info")

    def test_without_patch_falls_back_to_payload_text(self):
        message = make_event(nested=False)
        message["data"]["environmental_info"] = {"temperature": 1}

        assert is_derived_update(parse_event(message), "environmental_info")
        assert not is_derived_update(parse_event(make_event(nested=False)), "environmental_info")


class TestExpectedPropertyValue:
    def test_value_from_patch(self):
        event = parse_event(make_event(patch=[
            {"op": "replace", "path": "/decodedPayload", "value": {"temp": 21}}
        ]))

        value = expected_property_value(event, "decodedPayload")

        assert has_value(value)
        assert value == {"temp": 21}

    def test_last_operation_wins(self):
        event = parse_event(make_event(patch=[
            {"op": "add", "path": "/decodedPayload", "value": {"temp": 1}},
            {"op": "replace", "path": "/decodedPayload", "value": {"temp": 2}},
        ]))

        assert expected_property_value(event, "decodedPayload") == {"temp": 2}

    def test_removed_or_absent_property(self):
        event = parse_event(make_event(patch=[{"op": "remove", "path": "/decodedPayload"}]))

        assert not has_value(expected_property_value(event, "decodedPayload"))
        assert not has_value(expected_property_value(parse_event(make_event()), "decodedPayload"))

    def test_patch_operations_skips_garbage(self):
        event = parse_event(make_event(patch=["x", {"op": "add", "path": "/a", "value": 1}]))

        assert patch_operations(event) == [{"op": "add", "path": "/a", "value": 1}]
