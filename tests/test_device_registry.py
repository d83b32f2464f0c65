from __future__ import annotations

import asyncio
import os

import pytest
from pymongo.errors import DuplicateKeyError

from src.sensorhub.errors import ConflictError, NotFoundError
from src.sensorhub.schemas.devices import DeviceCreate, DeviceStatus
from src.sensorhub.services.device_registry import DeviceRegistry


@pytest.fixture
def registry(mongo_manager) -> DeviceRegistry:
    return DeviceRegistry(mongo_manager)


def test_ensure_device_auto_provisions_with_defaults(registry, mongo_db):
    device = registry.ensure_device("new1")

    assert device.device_id == "new1"
    assert device.status == DeviceStatus.active
    assert device.device_type == "sensor"
    assert "new1" in device.device_name
    assert device.created_at == device.updated_at
    assert mongo_db["devices"].count_documents({"device_id": "new1"}) == 1


def test_ensure_device_twice_returns_same_record(registry, mongo_db):
    first = registry.ensure_device("dup")
    second = registry.ensure_device("dup")

    assert first.id == second.id
    assert mongo_db["devices"].count_documents({"device_id": "dup"}) == 1


def test_ensure_device_leaves_existing_device_unchanged(registry):
    created = registry.create_device(
        DeviceCreate(device_id="lab-7", device_name="Lab probe", device_type="probe", location="Lab 7")
    )
    ensured = registry.ensure_device("lab-7")

    assert ensured.id == created.id
    assert ensured.device_name == "Lab probe"
    assert ensured.device_type == "probe"
    assert ensured.location == "Lab 7"


class _LosingRaceCollection:
    """Collection stand-in where another writer inserts the device just before our upsert."""

    def __init__(self, real, winner_doc):
        self._real = real
        self._winner_doc = winner_doc

    def find_one_and_update(self, *args, **kwargs):
        self._real.insert_one(dict(self._winner_doc))
        raise DuplicateKeyError("E11000 duplicate key error")

    def find_one(self, *args, **kwargs):
        return self._real.find_one(*args, **kwargs)


def test_ensure_device_treats_duplicate_key_as_success(registry, mongo_manager, mongo_db, monkeypatch):
    winner = registry.ensure_device("winner-template")
    winner_doc = mongo_db["devices"].find_one({"device_id": "winner-template"}, projection={"_id": 0})
    winner_doc.update({"id": "winner-id", "device_id": "race-1"})

    racing = _LosingRaceCollection(mongo_manager.collections().devices, winner_doc)
    monkeypatch.setattr(registry, "_col", lambda: racing)

    device = registry.ensure_device("race-1")

    assert device.id == "winner-id"
    assert device.device_id == "race-1"
    assert winner.device_id == "winner-template"
    assert mongo_db["devices"].count_documents({"device_id": "race-1"}) == 1


@pytest.mark.skipif(not os.getenv("TEST_MONGO_URI"), reason="needs a real mongod for true concurrent upserts")
@pytest.mark.anyio
async def test_concurrent_first_arrival_creates_one_record(registry, mongo_db):
    results = await asyncio.gather(*(asyncio.to_thread(registry.ensure_device, "burst") for _ in range(16)))

    assert len({d.id for d in results}) == 1
    assert mongo_db["devices"].count_documents({"device_id": "burst"}) == 1


def test_create_device_conflict(registry):
    registry.ensure_device("taken")
    with pytest.raises(ConflictError):
        registry.create_device(DeviceCreate(device_id="taken", device_name="Other"))


def test_set_status_is_idempotent_and_bumps_updated_at(registry):
    device = registry.ensure_device("s1")

    first = registry.set_status("s1", DeviceStatus.maintenance)
    second = registry.set_status("s1", DeviceStatus.maintenance)

    assert first.status == second.status == DeviceStatus.maintenance
    assert first.updated_at >= device.updated_at
    assert second.updated_at >= first.updated_at
    assert second.created_at == device.created_at


def test_set_status_unknown_device(registry):
    with pytest.raises(NotFoundError):
        registry.set_status("ghost", DeviceStatus.inactive)


def test_list_devices_newest_first(registry):
    registry.ensure_device("a")
    registry.ensure_device("b")
    listed = [d.device_id for d in registry.list_devices()]
    assert set(listed) == {"a", "b"}
    assert registry.get_device("a") is not None
    assert registry.get_device("zzz") is None
