"""
Invocation entry point shared by the Azure Function and the CLI.

Wires configuration, the ADT client and the orchestrator together. Every
failure is logged and turned into a return value; nothing is raised back
to the Functions host.
"""

import logging
from typing import Any, Callable, Dict, Optional

from .adt_helper import create_adt_client
from .aggregator import AggregationResult, EnvironmentalAggregator
from .config import Settings, load_settings
from .exceptions import AuthenticationError, ConfigurationError
from .twin_store import AdtTwinStore

logger = logging.getLogger(__name__)


def process_event(
    message: Dict[str, Any],
    settings_loader: Callable[[], Settings] = load_settings,
    client_factory: Callable[[str], Any] = create_adt_client,
) -> Optional[AggregationResult]:
    """
    Process one Event Grid event against Azure Digital Twins.

    Args:
        message: Event dict with eventType, subject and data
        settings_loader: Returns validated Settings
        client_factory: Builds a DigitalTwinsClient from the service URL

    Returns:
        The AggregationResult, or None if configuration or authentication
        failed and no processing took place
    """
    logger.info("ProcessDTRoutedData (Start)...")

    try:
        settings = settings_loader()
    except ConfigurationError as e:
        logger.error(f"Configuration Error: {e}")
        return None

    try:
        client = client_factory(settings.ADT_SERVICE_URL)
    except AuthenticationError as e:
        logger.error(f"Authentication Error: {e}")
        return None

    aggregator = EnvironmentalAggregator(AdtTwinStore(client), settings)
    result = aggregator.handle(message)

    logger.info(f"ProcessDTRoutedData (Done): {result.state.value}")
    return result
