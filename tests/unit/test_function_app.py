"""
Azure Function entry point tests.

The Event Grid event object is mocked; process_event is patched so the
tests only cover the translation from EventGridEvent to the event dict.
"""

from unittest.mock import MagicMock, patch

import function_app


def _grid_event(data):
    event = MagicMock()
    event.id = "evt-1"
    event.event_type = "Microsoft.DigitalTwins.Twin.Update"
    event.subject = "sensor-1"
    event.get_json.return_value = data
    return event


def test_event_to_message():
    data = {"data": {"modelId": "dtmi:ttnlwstack:sensorA;1", "patch": []}}

    message = function_app.event_to_message(_grid_event(data))

    assert message == {
        "id": "evt-1",
        "eventType": "Microsoft.DigitalTwins.Twin.Update",
        "subject": "sensor-1",
        "data": data,
    }


@patch("function_app.process_event")
def test_trigger_delegates_to_process_event(mock_process_event):
    handler = function_app.process_dt_routed_data.build().get_user_function()

    handler(_grid_event({"modelId": "dtmi:ttnlwstack:sensorA;1"}))

    mock_process_event.assert_called_once()
    assert mock_process_event.call_args.args[0]["subject"] == "sensor-1"


@patch("function_app.process_event")
def test_unparseable_body_is_dropped(mock_process_event):
    event = _grid_event(None)
    event.get_json.side_effect = ValueError("not json")
    handler = function_app.process_dt_routed_data.build().get_user_function()

    handler(event)

    mock_process_event.assert_not_called()
