from datetime import datetime
from zoneinfo import ZoneInfo

import pytest
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient

from kyc_workflow.core.errors import DependencyError
from kyc_workflow.database.models import DOCUMENT_MODELS
from kyc_workflow.services.email_service import MockEmailProvider, email_service
from kyc_workflow.services.notification_service import notification_service
from kyc_workflow.services.sequence_service import sequence_service
from kyc_workflow.services.storage_service import StorageBackend, StoredFile, storage_service


class MemoryStorageBackend(StorageBackend):
    """Keeps stored files in a dict; ``fail_deletes`` simulates an outage."""

    def __init__(self):
        self.files = {}
        self.fail_deletes = False
        self._counter = 0

    async def save(self, contents, filename, content_type, folder):
        self._counter += 1
        url = f"{folder}/{self._counter}_{filename}"
        self.files[url] = contents
        return StoredFile(url=url, file_name=filename, size=len(contents), mime_type=content_type)

    async def delete(self, url):
        if self.fail_deletes:
            raise DependencyError("Storage unavailable", details={"url": url})
        self.files.pop(url, None)

    async def read(self, url):
        if url not in self.files:
            raise DependencyError("Stored file is missing", details={"url": url})
        return self.files[url]


class FixedClock:
    def __init__(self, moment):
        self.moment = moment

    def __call__(self):
        return self.moment


@pytest.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client["kyc_workflow_test"]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    yield database


@pytest.fixture(autouse=True)
def notifications():
    notification_service.reset()
    yield notification_service
    notification_service.reset()


@pytest.fixture
def outbox():
    provider = MockEmailProvider()
    email_service.use_provider(provider)
    yield provider
    email_service.use_provider(None)


@pytest.fixture
def storage():
    backend = MemoryStorageBackend()
    storage_service.use_backend(backend)
    yield backend
    storage_service.use_backend(None)


@pytest.fixture
def clock():
    fixed = FixedClock(datetime(2025, 10, 15, 10, 30, tzinfo=ZoneInfo("Asia/Kolkata")))
    sequence_service.use_clock(fixed)
    yield fixed
    sequence_service.use_clock(None)


def drain_events(service=notification_service):
    """Queued notification events as ``(type, target)`` pairs, emptying the queue."""
    events = []
    while not service._queue.empty():
        item = service._queue.get_nowait()
        target = getattr(item, "target_user_id", None) or getattr(item, "broadcast", None) or getattr(item, "to", None)
        kind = getattr(item, "type", None) or getattr(item, "template_kind", None)
        events.append((getattr(kind, "value", kind), getattr(target, "value", target)))
    return events


@pytest.fixture
def queued_events():
    return drain_events
