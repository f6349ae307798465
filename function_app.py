"""
Process DT Routed Data Azure Function.

Event Grid triggered function that receives Azure Digital Twins change
notifications and maintains environmental_info on sensors and on the
containers they belong to.

Architecture:
    Azure Digital Twins → Event Grid → process-dt-routed-data → Azure Digital Twins

Environment Variables Required:
    - ADT_SERVICE_URL: Azure Digital Twins endpoint URL

Authentication:
    Uses DefaultAzureCredential via Managed Identity.
"""

import logging

import azure.functions as func

from twin_aggregator.handler import process_event

app = func.FunctionApp()


def event_to_message(event: func.EventGridEvent) -> dict:
    return {
        "id": event.id,
        "eventType": event.event_type,
        "subject": event.subject,
        "data": event.get_json(),
    }


@app.function_name(name="process-dt-routed-data")
@app.event_grid_trigger(arg_name="event")
def process_dt_routed_data(event: func.EventGridEvent) -> None:
    """
    Update environmental_info on the sensor twin and its container.

    Expected Event Grid Event Format:
        {
            "id": "unique-event-id",
            "subject": "sensor-1",
            "eventType": "Microsoft.DigitalTwins.Twin.Update",
            "data": {
                "data": {
                    "modelId": "dtmi:ttnlwstack:sensorA;1",
                    "patch": [
                        {"value": {"temp": 21.5}, "path": "/decodedPayload", "op": "replace"}
                    ]
                }
            }
        }
    """
    logging.info(f"ProcessDTRoutedData: Received event {event.id}")
    try:
        message = event_to_message(event)
    except ValueError as e:
        logging.error(f"ProcessDTRoutedData: Failed to parse event JSON: {e}")
        return

    process_event(message)
