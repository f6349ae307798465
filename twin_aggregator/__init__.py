"""
Environmental twin aggregator.

Keeps environmental_info on sensor twins and their containers in Azure
Digital Twins up to date from twin change events.
"""

from .aggregator import AggregationResult, EnvironmentalAggregator, PipelineState
from .config import Settings, load_settings
from .models import ChangeEvent, EnvironmentalReading, Relationship, Twin

__all__ = [
    "AggregationResult",
    "ChangeEvent",
    "EnvironmentalAggregator",
    "EnvironmentalReading",
    "PipelineState",
    "Relationship",
    "Settings",
    "Twin",
    "load_settings",
]
