"""
Twin Store interface and its Azure Digital Twins implementation.

The aggregator only needs four capabilities from the graph store. They
are expressed as a Protocol so tests can hand in an in-memory fake while
production code uses AdtTwinStore over azure-digitaltwins-core.
"""

import logging
import re
from typing import Any, Dict, List, Protocol, runtime_checkable

from azure.core.exceptions import AzureError

from .exceptions import StoreReadError, StoreWriteError
from .models import Relationship, Twin

logger = logging.getLogger(__name__)

# ADT string literals are single-quoted; ids with quotes or backslashes
# are rejected rather than escaped.
_UNSAFE_LITERAL = re.compile(r"['\\]")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@runtime_checkable
class TwinStore(Protocol):
    """Capabilities the aggregation pipeline needs from the graph store."""

    def query_twins_by_id(self, twin_id: str) -> List[Twin]:
        """Point query. Returns every twin matching the id (normally 0 or 1)."""
        ...

    def list_incoming_relationships(self, twin_id: str) -> List[Relationship]:
        """Relationships whose target is twin_id."""
        ...

    def query_related_twins(self, parent_id: str, relationship_name: str) -> List[Twin]:
        """All twins reached from parent_id via relationship_name."""
        ...

    def update_twin(self, twin_id: str, patch: List[Dict[str, Any]]) -> None:
        """Apply a JSON Patch atomically."""
        ...


def quote_literal(value: str) -> str:
    if _UNSAFE_LITERAL.search(value):
        raise ValueError(f"Twin id contains characters not allowed in a query: {value!r}")
    return f"'{value}'"


def _relationship_from_sdk(item: Any, target_id: str) -> Relationship:
    if isinstance(item, dict):
        return Relationship.from_adt(item, target_id=target_id)
    return Relationship(
        source_id=getattr(item, "source_id", "") or "",
        target_id=target_id,
        name=getattr(item, "relationship_name", "") or "",
    )


class AdtTwinStore:
    """
    TwinStore backed by a DigitalTwinsClient.

    All Azure SDK errors are wrapped into StoreReadError/StoreWriteError.
    """

    def __init__(self, client):
        if client is None:
            raise ValueError("client is required")
        self._client = client

    def query_twins_by_id(self, twin_id: str) -> List[Twin]:
        query = f"SELECT * FROM digitaltwins WHERE $dtId = {quote_literal(twin_id)}"
        try:
            return [Twin.from_adt(item) for item in self._client.query_twins(query)]
        except AzureError as e:
            raise StoreReadError("Twin query failed", twin_id=twin_id, original_error=e) from e

    def list_incoming_relationships(self, twin_id: str) -> List[Relationship]:
        try:
            return [
                _relationship_from_sdk(item, twin_id)
                for item in self._client.list_incoming_relationships(twin_id)
            ]
        except AzureError as e:
            raise StoreReadError(
                "Listing incoming relationships failed", twin_id=twin_id, original_error=e
            ) from e

    def query_related_twins(self, parent_id: str, relationship_name: str) -> List[Twin]:
        if not _IDENTIFIER.match(relationship_name):
            raise ValueError(f"Invalid relationship name: {relationship_name!r}")

        query = (
            f"SELECT Child FROM digitaltwins Parent "
            f"JOIN Child RELATED Parent.{relationship_name} "
            f"WHERE Parent.$dtId = {quote_literal(parent_id)}"
        )
        try:
            rows = list(self._client.query_twins(query))
        except AzureError as e:
            raise StoreReadError("Join query failed", twin_id=parent_id, original_error=e) from e

        return [Twin.from_adt(row["Child"]) for row in rows if "Child" in row]

    def update_twin(self, twin_id: str, patch: List[Dict[str, Any]]) -> None:
        try:
            self._client.update_digital_twin(twin_id, patch)
        except AzureError as e:
            raise StoreWriteError("Twin update failed", twin_id=twin_id, original_error=e) from e
