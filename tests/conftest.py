import asyncio
import os
import tempfile

import pytest

# Point the app at a throwaway database and storage dir before it is imported.
_TEST_DIR = tempfile.mkdtemp(prefix="diagnosis-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.sqlite3"
os.environ["DATA_DIR"] = _TEST_DIR

from app.services.providers import AnalysisProvider, AnalysisResult  # noqa: E402

JPEG_HEADER = b"\xff\xd8\xff\xe0"
PNG_HEADER = b"\x89PNG\r\n\x1a\n"
WEBP_HEADER = b"RIFF\x00\x00\x00\x00WEBP"

GOOD_RESULT = {
    "identified_issue": "worn bearing",
    "confidence_score": 82,
    "explanation": "A worn rod bearing lets the crankshaft knock against the connecting rod.",
    "diy_steps": ["Check the oil level", "Listen for the noise at idle"],
    "safety_warnings": "Avoid high revs until inspected.",
    "estimated_cost_min": 300,
    "estimated_cost_max": 900,
    "urgency_level": "medium",
    "safe_to_drive": True,
}


class StubProvider(AnalysisProvider):
    """Test double that records calls and returns a canned result or raises."""

    name = "stub"

    def __init__(self, result: dict | None = None, error: Exception | None = None, delay: float = 0):
        self.result = result if result is not None else GOOD_RESULT
        self.error = error
        self.delay = delay
        self.calls = 0
        self.payloads = []

    async def diagnose(self, payload):
        self.calls += 1
        self.payloads.append(payload)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return AnalysisResult(**self.result)


class FakeUpload:
    def __init__(self, filename: str, data: bytes, content_type: str = "image/jpeg"):
        self.filename = filename
        self.content_type = content_type
        self._data = data

    async def read(self) -> bytes:
        return self._data


class MemoryBlobStore:
    """Blob store that keeps bytes in memory; optional per-blob delays and failures."""

    def __init__(self, delays: dict[bytes, float] | None = None, fail_on: bytes | None = None):
        self.blobs: dict[str, bytes] = {}
        self.completed: list[bytes] = []
        self.deleted: list[str] = []
        self.delays = delays or {}
        self.fail_on = fail_on

    async def put(self, path: str, data: bytes) -> str:
        await asyncio.sleep(self.delays.get(data, 0))
        if data == self.fail_on:
            # leave a truncated blob behind, as an interrupted write would
            self.blobs[path] = data[:1]
            raise OSError("disk full")
        self.blobs[path] = data
        self.completed.append(data)
        return f"/storage/{path}"

    async def delete(self, path: str) -> None:
        self.deleted.append(path)
        self.blobs.pop(path, None)


@pytest.fixture(autouse=True, scope="session")
def setup_test_db():
    # Disable API key auth for tests
    from app.config import settings
    settings.api_key = ""
    settings.openai_api_key = ""

    from app.database import create_tables, async_session
    from app.seed import seed_data

    async def _setup():
        await create_tables()
        async with async_session() as session:
            await seed_data(session)

    asyncio.run(_setup())


@pytest.fixture
def stub_provider():
    from app.main import app
    from app.services.providers import get_analysis_provider

    provider = StubProvider()
    app.dependency_overrides[get_analysis_provider] = lambda: provider
    yield provider
    app.dependency_overrides.pop(get_analysis_provider, None)


@pytest.fixture
def fast_polling(monkeypatch):
    from app.config import settings
    monkeypatch.setattr(settings, "analysis_poll_interval_seconds", 0.01)
    monkeypatch.setattr(settings, "analysis_wait_timeout_seconds", 5.0)
