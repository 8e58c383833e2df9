"""
Pytest fixtures for the fossil catalog tests.

Everything runs against the in-memory backend; ``backend.call_count`` is the
remote-call counter.
"""

import itertools
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from fossil_app.catalog.context import FossilDataContext
from fossil_app.catalog.events import InvalidationBus
from fossil_app.storage import InMemoryBackend

_created = itertools.count()
_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_row(**overrides):
    """A fossils-table row; each call is created one minute after the last."""
    created = (_EPOCH + timedelta(minutes=next(_created))).isoformat()
    row = {
        "user_id": "user-1",
        "species": None,
        "description": "A fossil",
        "location": None,
        "discovery_date": None,
        "tags": None,
        "image_url": "http://localhost:54321/storage/v1/object/public/fossil-images/user-1/1.jpg",
        "created_at": created,
        "updated_at": created,
    }
    row.update(overrides)
    return row


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def bus():
    return InvalidationBus()


@pytest.fixture
def sample_rows():
    return [
        make_row(
            species="Trilobite",
            location="Utah",
            description="nice",
            tags=["paleozoic"],
            discovery_date="2019-06-01",
        ),
        make_row(
            species="Ammonite",
            location="France",
            description="spiral",
            tags=[],
            discovery_date="2021-03-15",
        ),
    ]


@pytest.fixture
def seeded_backend(backend, sample_rows):
    backend.seed("fossils", sample_rows)
    return backend


@pytest.fixture
def context(seeded_backend):
    return FossilDataContext(seeded_backend)


@pytest_asyncio.fixture
async def user_session(backend):
    """A signed-up user and a backend client bound to their access token."""
    session = await backend.auth.sign_up("mary@example.com", "anning1799", data={"name": "Mary"})
    return session.user, backend.with_token(session.access_token)


@pytest_asyncio.fixture
async def other_session(backend):
    session = await backend.auth.sign_up("gideon@example.com", "mantell1790")
    return session.user, backend.with_token(session.access_token)
