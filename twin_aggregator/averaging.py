"""Per-metric averaging over sibling readings."""

import math
from typing import Callable, Iterable, Optional, Union

from .models import METRICS, EnvironmentalReading

MetricSelector = Union[str, Callable[[EnvironmentalReading], Optional[float]]]


def _selector(metric: MetricSelector) -> Callable[[EnvironmentalReading], Optional[float]]:
    if callable(metric):
        return metric
    if metric not in METRICS:
        raise ValueError(f"Unknown metric '{metric}'. Expected one of {list(METRICS)}")
    return lambda reading: getattr(reading, metric)


def average(readings: Iterable[EnvironmentalReading], metric: MetricSelector) -> Optional[float]:
    """
    Mean of a metric over the readings that carry it.

    fsum keeps the result identical for any ordering of the input.

    Args:
        readings: Sibling readings
        metric: Metric name or a selector returning the value of a reading

    Returns:
        The mean, or None when no reading has a value for the metric
    """
    select = _selector(metric)
    values = [value for value in map(select, readings) if value is not None]
    if not values:
        return None
    return math.fsum(values) / len(values)


def aggregate_readings(readings: Iterable[EnvironmentalReading]) -> EnvironmentalReading:
    readings = list(readings)
    return EnvironmentalReading(**{
        metric: average(readings, metric) for metric in METRICS
    })
