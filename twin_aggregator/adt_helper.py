"""
ADT Helper Module.

Builds and applies the property patches written by the aggregator, and
creates the Azure Digital Twins client.

Both writes in the pipeline go through apply_property_patch():

    ┌─────────────────┐     ┌─────────────────┐
    │  Sensor twin    │     │  Parent twin    │
    │ (normalized)    │     │  (aggregate)    │
    └────────┬────────┘     └────────┬────────┘
             │                       │
             └───────────┬───────────┘
                         │
                         ▼
              ┌──────────────────────┐
              │   adt_helper.py      │
              │ apply_property_patch │
              └──────────┬───────────┘
                         │
                         ▼
              ┌──────────────────────┐
              │  Azure Digital Twins │
              └──────────────────────┘
"""

import json
import logging
from typing import Any, Dict, List

from .exceptions import AuthenticationError, StoreWriteError
from .models import Twin

logger = logging.getLogger(__name__)


def build_property_patch(twin: Twin, property_name: str, value: Any) -> List[Dict[str, Any]]:
    """
    Build a JSON Patch document that sets one property on a twin.

    ADT rejects "replace" on a property that was never set and "add" is
    not guaranteed to overwrite on every model, so the operation follows
    the twin's current state.

    Args:
        twin: The twin as last read from the store
        property_name: Top-level property to set
        value: JSON value to write (readings are passed as sparse dicts)

    Returns:
        List with a single JSON Patch operation

    Example:
        >>> build_property_patch(Twin("s1"), "environmental_info", {"temperature": 21.5})
        [{'op': 'add', 'path': '/environmental_info', 'value': {'temperature': 21.5}}]
    """
    if not property_name:
        raise ValueError("property_name is required")

    op = "replace" if property_name in twin.properties else "add"
    return [{
        "op": op,
        "path": f"/{property_name}",
        "value": value
    }]


def apply_property_patch(store, twin: Twin, property_name: str, value: Any) -> List[Dict[str, Any]]:
    """
    Build and apply a property patch to a twin.

    Args:
        store: TwinStore to write through
        twin: Target twin (its current properties decide add vs replace)
        property_name: Property to set
        value: Value to write

    Returns:
        The patch that was applied

    Raises:
        StoreWriteError: If the store rejected the update
    """
    patch = build_property_patch(twin, property_name, value)

    logger.info(f"Updating twin {twin.id}: {json.dumps(patch)}")
    try:
        store.update_twin(twin.id, patch)
    except StoreWriteError:
        raise
    except Exception as e:
        raise StoreWriteError("Twin update failed", twin_id=twin.id, original_error=e) from e

    logger.info(f"Twin {twin.id} -- UPDATED")
    return patch


def create_adt_client(adt_service_url: str):
    """
    Create an Azure Digital Twins client using DefaultAzureCredential.

    Uses managed identity when running in Azure Functions,
    or falls back to developer credentials locally.

    Args:
        adt_service_url: The ADT instance endpoint URL
            Format: https://{instance-name}.api.{region}.digitaltwins.azure.net

    Returns:
        Initialized DigitalTwinsClient

    Raises:
        AuthenticationError: If the credential or client cannot be built
    """
    if not adt_service_url:
        raise ValueError("adt_service_url is required")

    from azure.digitaltwins.core import DigitalTwinsClient
    from azure.identity import DefaultAzureCredential

    try:
        credential = DefaultAzureCredential()
        client = DigitalTwinsClient(adt_service_url, credential)
    except Exception as e:
        raise AuthenticationError(f"Could not create ADT client: {type(e).__name__}: {e}") from e

    logger.info(f"Created ADT client for: {adt_service_url}")
    return client
