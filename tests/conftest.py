"""Pytest configuration and fixtures."""
import copy
from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError

from app import create_app
from backend.core import OrganMatchBackend
from backend.store import DynamoOrganStore
from config import Config

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


class FakeTable:
    """In-memory stand-in for a boto3 DynamoDB Table keyed on ``id``"""

    def __init__(self, name, items=(), page_size=2):
        self.name = name
        self.items = {item["id"]: copy.deepcopy(item) for item in items}
        self.page_size = page_size
        self.scan_calls = 0

    def scan(self, ExclusiveStartKey=None):
        self.scan_calls += 1
        keys = list(self.items)
        start = keys.index(ExclusiveStartKey["id"]) + 1 if ExclusiveStartKey else 0
        page = keys[start:start + self.page_size]
        response = {"Items": [copy.deepcopy(self.items[k]) for k in page]}
        if start + self.page_size < len(keys):
            response["LastEvaluatedKey"] = {"id": page[-1]}
        return response

    def get_item(self, Key):
        item = self.items.get(Key["id"])
        return {"Item": copy.deepcopy(item)} if item is not None else {}

    def update_item(self, Key, ExpressionAttributeValues, **kwargs):
        item = self.items[Key["id"]]
        if item.get("status") != ExpressionAttributeValues[":pending"]:
            raise ClientError(
                {"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}},
                "UpdateItem",
            )
        item["status"] = ExpressionAttributeValues[":target"]
        return {"Attributes": copy.deepcopy(item)}

    def batch_writer(self):
        return FakeBatchWriter(self)


class FakeBatchWriter:
    def __init__(self, table):
        self.table = table

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def put_item(self, Item):
        self.table.items[Item["id"]] = copy.deepcopy(Item)


class TestConfig(Config):
    TESTING = True
    MATCHING_DEFAULTS = {}


def donor_item(id, blood_type="O-", organs=("heart",), date_of_birth=None, name=None):
    item = {"id": id, "name": name or f"Donor {id}", "bloodType": blood_type, "organs": list(organs)}
    if date_of_birth:
        item["dateOfBirth"] = date_of_birth
    return item


def request_item(id, blood_type="AB+", organ="Heart", urgency="High", status="Pending",
                 created_at="2025-06-05T12:00:00Z", age=None):
    item = {
        "id": id,
        "patientId": f"patient-{id}",
        "patientName": f"Patient {id}",
        "bloodType": blood_type,
        "requiredOrgan": organ,
        "hospitalName": "General Hospital",
        "urgencyLevel": urgency,
        "status": status,
        "createdAt": created_at,
    }
    if age is not None:
        item["age"] = age
    return item


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def donors_table():
    return FakeTable("donors", [
        donor_item("d1", "O-", ["heart", "kidney"]),
        donor_item("d2", "A+", ["kidney"]),
        donor_item("d3", "AB+", ["heart"]),
    ])


@pytest.fixture
def requests_table():
    return FakeTable("requests", [
        request_item("r1", "AB+", "Heart", "High"),
        request_item("r2", "A+", "kidney", "Low", created_at="2025-06-14T12:00:00Z"),
        request_item("r3", "O+", "liver", "Medium"),
        request_item("r4", "AB+", "heart", "Medium", status="Approved"),
    ])


@pytest.fixture
def backend(donors_table, requests_table):
    return OrganMatchBackend(DynamoOrganStore(donors_table, requests_table))


@pytest.fixture
def client(backend):
    app = create_app(TestConfig, backend=backend)
    return app.test_client()
