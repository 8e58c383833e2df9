"""
Tests for FossilService: image handling around row mutations and
ownership enforced by the mutation predicate.
"""

import pytest

from fossil_app.catalog.schemas import FossilCreate, FossilUpdate
from fossil_app.catalog.service import FossilService, build_image_path, image_path_from_url
from fossil_app.errors import BackendError, FossilNotFoundError, FossilPermissionError, StorageError
from fossil_app.models import ImageUpload
from fossil_app.storage import InMemoryBackend, InMemoryBucket

NOW = 1_700_000_000.123
BUCKET = "fossil-images"


def _clock():
    return NOW


def _image(name="trilobite.jpg"):
    return ImageUpload(filename=name, content=b"\xff\xd8jpeg", content_type="image/jpeg")


def _payload(**overrides):
    data = {
        "species": "Trilobite",
        "description": "Found in shale",
        "location": "Utah",
        "discovery_date": "2019-06-01",
        "tags": "paleozoic, marine, ",
    }
    data.update(overrides)
    return FossilCreate(**data)


class RejectingInsertBackend(InMemoryBackend):
    async def run(self, query):
        if query.method == "insert":
            raise BackendError("new row violates row-level security policy", status_code=403)
        return await super().run(query)


@pytest.fixture
def published(bus):
    messages = []
    bus.subscribe(messages.append)
    return messages


@pytest.fixture
def service(user_session, bus):
    _, client = user_session
    return FossilService(client, bus=bus, clock=_clock)


def test_image_paths():
    assert build_image_path("u1", "photo.final.PNG", 42) == "u1/42.PNG"
    url = "https://x.supabase.co/storage/v1/object/public/fossil-images/u1/42.png"
    assert image_path_from_url(url) == "u1/42.png"
    assert image_path_from_url("https://cdn.example.com/u1/42.png") is None
    assert image_path_from_url("https://x.supabase.co/fossil-images") is None
    assert image_path_from_url(None) is None


async def test_create_uploads_then_inserts(backend, user_session, service, published):
    user, _ = user_session

    fossil = await service.create_fossil(user, _payload(), _image())

    path = f"{user.id}/{int(NOW * 1000)}.jpg"
    assert backend.store.objects[(BUCKET, path)] == b"\xff\xd8jpeg"
    assert fossil.image_url.endswith(f"/storage/v1/object/public/{BUCKET}/{path}")
    assert fossil.user_id == user.id
    assert fossil.tags == ["paleozoic", "marine"]
    assert str(fossil.discovery_date) == "2019-06-01"
    assert len(published) == 1


async def test_blank_optional_fields_are_stored_as_null(user_session, service):
    user, _ = user_session

    fossil = await service.create_fossil(
        user, _payload(species="  ", location="", discovery_date="", tags=""), _image()
    )

    assert fossil.species is None
    assert fossil.location is None
    assert fossil.discovery_date is None
    assert fossil.tags is None


async def test_failed_upload_leaves_no_row(backend, user_session, service, published):
    user, client = user_session
    path = f"{user.id}/{int(NOW * 1000)}.jpg"
    await client.storage.from_(BUCKET).upload(path, b"existing")

    with pytest.raises(StorageError):
        await service.create_fossil(user, _payload(), _image())

    assert backend.store.tables.get("fossils", []) == []
    assert backend.store.objects[(BUCKET, path)] == b"existing"
    assert published == []


async def test_failed_insert_removes_uploaded_image(user_session, bus):
    user, client = user_session
    rejecting = RejectingInsertBackend(store=client.store, access_token=client.access_token)
    service = FossilService(rejecting, bus=bus, clock=_clock)

    with pytest.raises(BackendError):
        await service.create_fossil(user, _payload(), _image())

    assert rejecting.store.objects == {}


async def test_owner_can_update(user_session, service, published):
    user, _ = user_session
    fossil = await service.create_fossil(user, _payload(), _image())

    updated = await service.update_fossil(
        user, fossil.id, FossilUpdate(description="Cleaned and prepared", tags="cambrian")
    )

    assert updated.description == "Cleaned and prepared"
    assert updated.tags == ["cambrian"]
    assert updated.species is None
    assert updated.image_url == fossil.image_url
    assert len(published) == 2


async def test_replacing_the_image_removes_the_old_one(backend, user_session, bus):
    user, client = user_session
    ticks = iter([1000.0, 2000.0])
    service = FossilService(client, bus=bus, clock=lambda: next(ticks))
    fossil = await service.create_fossil(user, _payload(), _image())

    updated = await service.update_fossil(user, fossil.id, FossilUpdate(description="new"), _image("new.png"))

    assert (BUCKET, f"{user.id}/1000000.jpg") not in backend.store.objects
    assert (BUCKET, f"{user.id}/2000000.png") in backend.store.objects
    assert updated.image_url.endswith(f"{user.id}/2000000.png")


async def test_cleanup_failure_does_not_fail_the_update(backend, user_session, bus, monkeypatch):
    user, client = user_session
    ticks = iter([1000.0, 2000.0])
    service = FossilService(client, bus=bus, clock=lambda: next(ticks))
    fossil = await service.create_fossil(user, _payload(), _image())

    async def broken_remove(self, paths):
        raise StorageError("Object not found", status_code=404)

    monkeypatch.setattr(InMemoryBucket, "remove", broken_remove)

    updated = await service.update_fossil(user, fossil.id, FossilUpdate(description="new"), _image("b.jpg"))

    assert updated.description == "new"
    assert (BUCKET, f"{user.id}/1000000.jpg") in backend.store.objects


async def test_non_owner_update_is_rejected_by_the_predicate(backend, user_session, other_session, service, bus):
    user, _ = user_session
    other, other_client = other_session
    fossil = await service.create_fossil(user, _payload(), _image())
    intruder = FossilService(other_client, bus=bus, clock=_clock)

    with pytest.raises(FossilPermissionError):
        await intruder.update_fossil(other, fossil.id, FossilUpdate(description="mine now"))

    row = backend.store.tables["fossils"][0]
    assert row["description"] == "Found in shale"
    assert row["user_id"] == user.id


async def test_non_owner_image_replacement_uploads_nothing(backend, user_session, other_session, service, bus):
    user, _ = user_session
    other, other_client = other_session
    fossil = await service.create_fossil(user, _payload(), _image())
    intruder = FossilService(other_client, bus=bus, clock=lambda: 5.0)

    with pytest.raises(FossilPermissionError):
        await intruder.update_fossil(other, fossil.id, FossilUpdate(description="x"), _image())

    assert len(backend.store.objects) == 1


async def test_update_of_missing_fossil(user_session, service):
    user, _ = user_session
    with pytest.raises(FossilNotFoundError):
        await service.update_fossil(user, "does-not-exist", FossilUpdate(description="x"))


async def test_owner_can_delete(backend, user_session, service, published):
    user, _ = user_session
    fossil = await service.create_fossil(user, _payload(), _image())

    await service.delete_fossil(user, fossil.id)

    assert backend.store.tables["fossils"] == []
    assert backend.store.objects == {}
    assert len(published) == 2
    with pytest.raises(FossilNotFoundError):
        await service.get_fossil(fossil.id)


async def test_non_owner_delete_is_rejected(backend, user_session, other_session, service, bus, published):
    user, _ = user_session
    other, other_client = other_session
    fossil = await service.create_fossil(user, _payload(), _image())

    with pytest.raises(FossilPermissionError):
        await FossilService(other_client, bus=bus).delete_fossil(other, fossil.id)

    assert len(backend.store.tables["fossils"]) == 1
    assert len(backend.store.objects) == 1
    assert len(published) == 1


async def test_get_fossil(user_session, service):
    user, _ = user_session
    fossil = await service.create_fossil(user, _payload(), _image())

    assert await service.get_fossil(fossil.id) == fossil
