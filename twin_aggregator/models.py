"""
Value objects shared by the aggregation pipeline.

Twins and relationships are read-only views of what Azure Digital Twins
returns; readings and events are created fresh per invocation.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

METRICS = ("temperature", "humidity", "co2")


@dataclass(frozen=True)
class EnvironmentalReading:
    """
    Canonical environmental reading.

    Every field is independently optional. None means "not measured",
    never zero.
    """

    temperature: Optional[float] = None
    humidity: Optional[float] = None
    co2: Optional[float] = None

    def to_document(self) -> Dict[str, float]:
        """Serialize to the stored property shape, omitting absent fields."""
        return {
            name: getattr(self, name)
            for name in METRICS
            if getattr(self, name) is not None
        }

    def is_empty(self) -> bool:
        return not self.to_document()


@dataclass
class Twin:
    """
    A digital twin as returned by a query.

    Attributes:
        id: The $dtId of the twin
        model_id: The DTDL model ($metadata.$model)
        properties: Custom properties, without $-prefixed system fields
    """

    id: str
    model_id: str = ""
    properties: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_adt(cls, document: Dict[str, Any]) -> "Twin":
        """
        Build a Twin from a BasicDigitalTwin-shaped dict.

        Example:
            >>> Twin.from_adt({"$dtId": "s1", "$metadata": {"$model": "dtmi:x;1"}, "temp": 1})
            Twin(id='s1', model_id='dtmi:x;1', properties={'temp': 1})
        """
        metadata = document.get("$metadata") or {}
        properties = {
            key: value
            for key, value in document.items()
            if not key.startswith("$")
        }
        return cls(
            id=document.get("$dtId", ""),
            model_id=metadata.get("$model", ""),
            properties=properties,
        )


@dataclass(frozen=True)
class Relationship:
    source_id: str
    target_id: str
    name: str

    @classmethod
    def from_adt(cls, document: Dict[str, Any], target_id: str = "") -> "Relationship":
        """Build from an IncomingRelationship or BasicRelationship dict."""
        return cls(
            source_id=document.get("$sourceId", ""),
            target_id=document.get("$targetId", target_id),
            name=document.get("$relationshipName", ""),
        )


@dataclass(frozen=True)
class ChangeEvent:
    """
    One change notification from the Twin Store.

    Attributes:
        event_type: Event Grid event type (e.g. Microsoft.DigitalTwins.Twin.Update)
        subject: Id of the twin that changed
        model_id: DTDL model of that twin
        raw_payload: The event body carrying modelId (and usually a patch list)
    """

    event_type: str
    subject: str
    model_id: str
    raw_payload: Dict[str, Any] = field(default_factory=dict)
