"""
Graph traversal: from a sensor twin to its container and siblings.

Container twins point at their sensors through a relationship named
"sensors" (configurable). Walking it backwards gives the parent; walking
it forwards from the parent gives every sibling sensor.
"""

import logging
from typing import List, Optional

from .config import DEFAULT_PROPERTY, DEFAULT_RELATIONSHIP
from .exceptions import AmbiguousTwinError
from .models import EnvironmentalReading, Twin
from .normalize import reading_from_document

logger = logging.getLogger(__name__)


def get_twin(store, twin_id: str) -> Optional[Twin]:
    """
    Point-query a twin by id.

    Returns None when nothing matches.

    Raises:
        AmbiguousTwinError: If more than one twin carries the id
    """
    twins = store.query_twins_by_id(twin_id)
    if len(twins) > 1:
        raise AmbiguousTwinError(twin_id, len(twins))
    return twins[0] if twins else None


def find_parent_id(store, sensor_id: str, relationship_name: str = DEFAULT_RELATIONSHIP) -> Optional[str]:
    sources = [
        rel.source_id
        for rel in store.list_incoming_relationships(sensor_id)
        if rel.name == relationship_name
    ]
    if not sources:
        return None
    if len(sources) > 1:
        # Enumeration order is not defined by the store.
        logger.warning(
            f"Sensor {sensor_id} has {len(sources)} incoming '{relationship_name}' "
            f"relationships ({', '.join(sources)}); using the last one"
        )
    return sources[-1]


def find_parent(store, sensor_id: str, relationship_name: str = DEFAULT_RELATIONSHIP) -> Optional[Twin]:
    """
    Find the container twin holding a sensor.

    Args:
        store: TwinStore to query
        sensor_id: Id of the sensor twin
        relationship_name: Relationship from container to sensor

    Returns:
        The parent twin, or None if the sensor is not attached to one
        (or the parent twin itself cannot be found)
    """
    parent_id = find_parent_id(store, sensor_id, relationship_name)
    if parent_id is None:
        return None

    parent = get_twin(store, parent_id)
    if parent is None:
        logger.warning(f"Sensor {sensor_id} points to parent {parent_id}, but that twin was not found")
    return parent


def list_sibling_twins(store, parent_id: str, relationship_name: str = DEFAULT_RELATIONSHIP) -> List[Twin]:
    return store.query_related_twins(parent_id, relationship_name)


def readings_of(twins: List[Twin], property_name: str = DEFAULT_PROPERTY) -> List[EnvironmentalReading]:
    """Parse the stored reading of each twin, skipping twins without one."""
    return [
        reading_from_document(twin.properties[property_name])
        for twin in twins
        if property_name in twin.properties
    ]


def list_sibling_readings(
    store,
    parent_id: str,
    relationship_name: str = DEFAULT_RELATIONSHIP,
    property_name: str = DEFAULT_PROPERTY
) -> List[EnvironmentalReading]:
    """
    Readings of all sensors under a container.

    Sensors that never stored a reading are left out instead of counting
    as zero.
    """
    return readings_of(list_sibling_twins(store, parent_id, relationship_name), property_name)
