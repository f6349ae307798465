"""
Environmental aggregation orchestrator.

Handles one twin change event end to end:

    1) Filter: only sensor twins, and never our own environmental_info writes
    2) Re-read the sensor twin once the store shows the new decodedPayload
    3) Normalize the payload and write environmental_info on the sensor
    4) Follow the incoming "sensors" relationship to the container twin
    5) Read environmental_info of every sensor in that container
    6) Average per metric and write environmental_info on the container

Each invocation is independent. Store failures are logged and end the
invocation; redelivery is left to Event Grid.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .adt_helper import apply_property_patch
from .averaging import aggregate_readings
from .config import Settings
from .events import (
    expected_property_value,
    has_value,
    is_derived_update,
    is_sensor_event,
    parse_event,
)
from .exceptions import AggregationError, ConsistencyTimeoutError, MalformedEventError
from .graph import find_parent, get_twin, list_sibling_twins, readings_of
from .models import ChangeEvent, EnvironmentalReading, Twin
from .normalize import decode_payload, normalize_reading, reading_from_document
from .retry_utils import wait_for

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    RECEIVED = "received"
    FILTERED = "filtered"
    SENSOR_UPDATED = "sensor_updated"
    PARENT_RESOLVED = "parent_resolved"
    SIBLINGS_GATHERED = "siblings_gathered"
    PARENT_UPDATED = "parent_updated"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


TERMINAL_STATES = (PipelineState.DONE, PipelineState.SKIPPED, PipelineState.FAILED)


@dataclass
class AggregationResult:
    """
    Outcome of one invocation.

    Attributes:
        state: Terminal state reached (DONE, SKIPPED or FAILED)
        twin_id: Subject of the event
        parent_id: Container twin, when one was resolved
        sensor_reading: Reading written to the sensor twin
        aggregate: Reading written to the container twin
        sibling_count: Number of sibling readings averaged
        reason: Why the invocation was skipped or failed
        history: Every state visited, in order
    """

    state: PipelineState = PipelineState.RECEIVED
    twin_id: Optional[str] = None
    parent_id: Optional[str] = None
    sensor_reading: Optional[EnvironmentalReading] = None
    aggregate: Optional[EnvironmentalReading] = None
    sibling_count: int = 0
    reason: Optional[str] = None
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])

    def advance(self, state: PipelineState) -> "AggregationResult":
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"Invocation already finished in state '{self.state.value}'")
        self.state = state
        self.history.append(state)
        return self

    def finish(self, state: PipelineState, reason: Optional[str] = None) -> "AggregationResult":
        self.reason = reason
        return self.advance(state)


class EnvironmentalAggregator:
    """
    Runs the aggregation pipeline against a TwinStore.

    Args:
        store: TwinStore implementation (AdtTwinStore in production)
        settings: Loaded Settings
    """

    def __init__(self, store, settings: Settings):
        if store is None:
            raise ValueError("store is required")
        self.store = store
        self.settings = settings
        self.policy = settings.retry_policy()

    @property
    def property_name(self) -> str:
        return self.settings.ENVIRONMENTAL_INFO_PROPERTY

    def handle(self, message: Dict[str, Any]) -> AggregationResult:
        """
        Process one Event Grid event.

        Never raises for event or store problems; the outcome is reported
        in the returned result and in the logs.
        """
        result = AggregationResult(twin_id=message.get("subject") if isinstance(message, dict) else None)

        try:
            event = parse_event(message)
        except MalformedEventError as e:
            logger.warning(f"Skipping malformed event: {e}")
            return result.finish(PipelineState.SKIPPED, str(e))

        logger.info(f"Event received: {event.event_type} for twin {event.subject} ({event.model_id})")

        if not is_sensor_event(event, self.settings.SENSOR_MODEL_PREFIX):
            logger.info(f"Ignoring twin {event.subject}: model {event.model_id} is not a sensor model")
            return result.finish(PipelineState.SKIPPED, "not a sensor model")

        if is_derived_update(event, self.property_name):
            logger.info(f"Ignore {self.property_name} update")
            return result.finish(PipelineState.SKIPPED, f"{self.property_name} update")

        result.advance(PipelineState.FILTERED)

        try:
            self._run(event, result)
        except MalformedEventError as e:
            logger.warning(f"Skipping twin {event.subject}: {e}")
            return result.finish(PipelineState.SKIPPED, str(e))
        except (AggregationError, ValueError) as e:
            logger.error(f"Aggregation for twin {event.subject} failed: {type(e).__name__}: {e}")
            return result.finish(PipelineState.FAILED, str(e))

        logger.info(f"Aggregation for twin {event.subject} (Done)")
        return result

    def _run(self, event: ChangeEvent, result: AggregationResult) -> None:
        settings = self.settings

        sensor = self._read_sensor(event)
        payload = decode_payload(sensor.properties.get(settings.DECODED_PAYLOAD_PROPERTY))
        reading = normalize_reading(payload)
        result.sensor_reading = reading

        logger.info(f"Consolidating {self.property_name} for sensor {sensor.id}")
        apply_property_patch(self.store, sensor, self.property_name, reading.to_document())
        result.advance(PipelineState.SENSOR_UPDATED)

        parent = find_parent(self.store, sensor.id, settings.SENSOR_RELATIONSHIP_NAME)
        if parent is None:
            logger.info(f"Sensor {sensor.id} is not attached to a container, nothing to aggregate")
            result.finish(PipelineState.DONE)
            return

        logger.info(f"Found sensor {sensor.id} in {parent.id}")
        result.parent_id = parent.id
        result.advance(PipelineState.PARENT_RESOLVED)

        readings, timed_out = self._gather_sibling_readings(parent, sensor.id, reading)
        result.sibling_count = len(readings)
        result.advance(PipelineState.SIBLINGS_GATHERED)

        aggregate = aggregate_readings(readings)
        if timed_out and aggregate.is_empty():
            logger.warning(f"No sensor readings visible under {parent.id}; keeping its {self.property_name}")
            result.finish(PipelineState.DONE, "no sibling readings visible")
            return

        result.aggregate = aggregate
        apply_property_patch(self.store, parent, self.property_name, aggregate.to_document())
        result.advance(PipelineState.PARENT_UPDATED)
        result.finish(PipelineState.DONE)

    def _read_sensor(self, event: ChangeEvent) -> Twin:
        """
        Re-read the sensor twin until its decodedPayload is visible.

        When the event's patch carries the new decodedPayload, the stored
        value must match it. If it never does but some payload is stored,
        that payload is used; a newer event will have superseded ours.
        A visible twin without any decodedPayload ends the invocation as
        malformed unless the event itself set one.
        """
        prop = self.settings.DECODED_PAYLOAD_PROPERTY
        expected = expected_property_value(event, prop)

        def is_ready(twin: Optional[Twin]) -> bool:
            if twin is None:
                return False
            if prop not in twin.properties:
                # wait only when the event itself set the payload
                return not has_value(expected)
            if has_value(expected):
                return decode_payload(twin.properties[prop]) == decode_payload(expected)
            return True

        try:
            twin = wait_for(
                lambda: get_twin(self.store, event.subject),
                is_ready,
                self.policy,
                description=f"sensor twin {event.subject}"
            )
        except ConsistencyTimeoutError as e:
            twin = e.last_value
            if twin is None or prop not in twin.properties:
                raise
            logger.warning(f"Twin {twin.id} does not show the event's {prop}; using the stored one")
            return twin

        if prop not in twin.properties:
            raise MalformedEventError(f"Sensor twin has no {prop}", twin_id=twin.id)
        return twin

    def _gather_sibling_readings(
        self,
        parent: Twin,
        sensor_id: str,
        reading: EnvironmentalReading
    ) -> Tuple[List[EnvironmentalReading], bool]:
        """
        Read all sibling readings once the join result shows this sensor's
        new reading. On timeout the last snapshot is used as is.

        Returns:
            (readings, timed_out)
        """
        prop = self.property_name

        def is_ready(twins: List[Twin]) -> bool:
            return any(
                twin.id == sensor_id
                and prop in twin.properties
                and reading_from_document(twin.properties[prop]) == reading
                for twin in twins
            )

        try:
            twins = wait_for(
                lambda: list_sibling_twins(self.store, parent.id, self.settings.SENSOR_RELATIONSHIP_NAME),
                is_ready,
                self.policy,
                description=f"sensors of {parent.id}"
            )
        except ConsistencyTimeoutError as e:
            twins = e.last_value or []
            logger.warning(
                f"Sensor {sensor_id} reading not yet visible under {parent.id}; "
                f"aggregating the last snapshot of {len(twins)} sensors"
            )
            return readings_of(twins, prop), True

        return readings_of(twins, prop), False
