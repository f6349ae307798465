"""
Reading normalization.

LoRaWAN decoders name the same measurement differently depending on the
device vendor. This module maps a decoded payload onto the canonical
EnvironmentalReading:
- temperature (from temperature, temp, TEMP, TempC_SHT)
- humidity (from humidity, Hum_SHT, relativeHumidity, RHUM)
- co2 (from co2)
"""

import json
import math
from typing import Any, Mapping, Optional

from .models import METRICS, EnvironmentalReading

# Priority order matters: the first alias carrying a value wins.
METRIC_ALIASES = {
    "temperature": ("temperature", "temp", "TEMP", "TempC_SHT"),
    "humidity": ("humidity", "Hum_SHT", "relativeHumidity", "RHUM"),
    "co2": ("co2",),
}


def to_finite_float(value: Any) -> Optional[float]:
    """
    Convert a payload value to a finite float.

    Returns None for booleans, containers, non-numeric strings, NaN,
    infinities and integers too large for a float.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def extract_metric(payload: Mapping[str, Any], aliases) -> Optional[float]:
    """Return the value of the first alias present in payload, parsed."""
    for alias in aliases:
        value = payload.get(alias)
        if value is not None:
            return to_finite_float(value)
    return None


def normalize_reading(payload: Any) -> EnvironmentalReading:
    """
    Build a canonical reading from a decoded sensor payload.

    Args:
        payload: Decoded payload document; anything but a mapping yields
            an empty reading

    Returns:
        EnvironmentalReading with a field per metric that could be parsed

    Example:
        >>> normalize_reading({"temp": 21.5, "Hum_SHT": 60})
        EnvironmentalReading(temperature=21.5, humidity=60.0, co2=None)
    """
    if not isinstance(payload, Mapping):
        return EnvironmentalReading()

    return EnvironmentalReading(**{
        metric: extract_metric(payload, aliases)
        for metric, aliases in METRIC_ALIASES.items()
    })


def decode_payload(value: Any) -> Optional[dict]:
    """
    Return the decodedPayload property as a dict.

    The property is stored either as a JSON object or as a JSON-encoded
    string, depending on the upstream decoder.
    """
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    return value if isinstance(value, dict) else None


def reading_from_document(document: Any) -> EnvironmentalReading:
    """Parse a stored environmental_info document (canonical keys only)."""
    document = decode_payload(document)
    if document is None:
        return EnvironmentalReading()
    return EnvironmentalReading(**{
        metric: to_finite_float(document.get(metric))
        for metric in METRICS
    })
