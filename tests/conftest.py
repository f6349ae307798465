import copy
import os
import sys

import pytest

# Make the package importable without installing it
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from twin_aggregator.config import Settings
from twin_aggregator.exceptions import StoreWriteError
from twin_aggregator.models import Relationship, Twin

SENSOR_MODEL = "dtmi:ttnlwstack:sensorA;1"
BOOTH_MODEL = "dtmi:exhibition:booth;1"


class InMemoryTwinStore:
    """
    TwinStore fake with JSON Patch semantics close to ADT.

    Attributes:
        twins: Current twins by id
        relationships: All relationships in the graph
        updates: (twin_id, patch) for every successful update, in order
        hidden_reads: Per twin id, number of point queries that return nothing
        stale_join_reads: Number of join queries served from a frozen snapshot
        fail_writes: Twin ids whose updates raise StoreWriteError
    """

    def __init__(self):
        self.twins = {}
        self.relationships = []
        self.updates = []
        self.hidden_reads = {}
        self.stale_join_reads = 0
        self.fail_writes = set()
        self.calls = []
        self._join_snapshot = None

    # Setup helpers

    def add_twin(self, twin_id, model_id=SENSOR_MODEL, **properties):
        self.twins[twin_id] = Twin(id=twin_id, model_id=model_id, properties=dict(properties))
        return self.twins[twin_id]

    def relate(self, source_id, target_id, name="sensors"):
        self.relationships.append(Relationship(source_id=source_id, target_id=target_id, name=name))

    def freeze_join_index(self, reads):
        """Serve the next `reads` join queries from the current state."""
        self._join_snapshot = copy.deepcopy(self.twins)
        self.stale_join_reads = reads

    # TwinStore protocol

    def query_twins_by_id(self, twin_id):
        self.calls.append(("query_twins_by_id", twin_id))
        if self.hidden_reads.get(twin_id, 0) > 0:
            self.hidden_reads[twin_id] -= 1
            return []
        twin = self.twins.get(twin_id)
        return [copy.deepcopy(twin)] if twin else []

    def list_incoming_relationships(self, twin_id):
        self.calls.append(("list_incoming_relationships", twin_id))
        return [rel for rel in self.relationships if rel.target_id == twin_id]

    def query_related_twins(self, parent_id, relationship_name):
        self.calls.append(("query_related_twins", parent_id))
        source = self.twins
        if self.stale_join_reads > 0:
            self.stale_join_reads -= 1
            source = self._join_snapshot
        return [
            copy.deepcopy(source[rel.target_id])
            for rel in self.relationships
            if rel.source_id == parent_id and rel.name == relationship_name and rel.target_id in source
        ]

    def update_twin(self, twin_id, patch):
        self.calls.append(("update_twin", twin_id))
        if twin_id in self.fail_writes:
            raise StoreWriteError("Twin update failed", twin_id=twin_id)
        twin = self.twins[twin_id]
        for op in patch:
            name = op["path"].lstrip("/")
            if op["op"] == "replace" and name not in twin.properties:
                raise StoreWriteError(f"Cannot replace missing property {name}", twin_id=twin_id)
            twin.properties[name] = copy.deepcopy(op["value"])
        self.updates.append((twin_id, copy.deepcopy(patch)))

    # Assertions

    def writes_to(self, twin_id):
        return [patch for target, patch in self.updates if target == twin_id]


@pytest.fixture
def store():
    return InMemoryTwinStore()


@pytest.fixture
def settings():
    return Settings(
        ADT_SERVICE_URL="https://test-adt.api.weu.digitaltwins.azure.net",
        CONSISTENCY_MAX_ATTEMPTS=3,
        CONSISTENCY_INITIAL_DELAY=0.01,
        CONSISTENCY_MAX_DELAY=0.05,
        CONSISTENCY_TIMEOUT=5.0,
    )


@pytest.fixture(autouse=True)
def mock_sleep(monkeypatch):
    """Skip time.sleep calls to speed up tests."""
    monkeypatch.setattr("time.sleep", lambda x: None)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep real application settings out of the tests."""
    for name in list(os.environ):
        if name.startswith(("ADT_", "SENSOR_", "CONSISTENCY_", "ENVIRONMENTAL_", "DECODED_")) or name == "DEBUG":
            monkeypatch.delenv(name, raising=False)


def make_event(twin_id="sensor-1", model_id=SENSOR_MODEL, patch=None, nested=True, event_type="Microsoft.DigitalTwins.Twin.Update"):
    """Build an Event Grid event dict as routed by ADT."""
    body = {"modelId": model_id}
    if patch is not None:
        body["patch"] = patch
    data = {"data": body, "contenttype": "application/json"} if nested else body
    return {"eventType": event_type, "subject": twin_id, "data": data}
