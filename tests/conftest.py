"""
Shared fixtures: temporary SQLite database, temporary storage root, a manual
clock for the cache and test doubles that fail on demand.
"""

from datetime import datetime, timezone

import pytest

from letter_archive.entities import Actor, FileUpload, Invitation, LetterCategory, LetterDraft, UserRole
from letter_archive.errors import ArchiveError
from letter_archive.repositories import LocalFileStorage, MemoryCacheStore, SqlDataStore
from letter_archive.services import FileService, LetterReadService, LetterService, NotificationService

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 17


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FlakyStore:
    """Wraps a data store and fails chosen transactions after their work ran.

    The first ``passes`` transactions go through untouched. The next
    ``failures`` transactions run ``fn`` and then raise ``error``, so the
    real transaction rolls back exactly as a failed commit would.
    """

    def __init__(self, inner, error: Exception, passes: int = 1, failures: int = 1) -> None:
        self._inner = inner
        self._error = error
        self._passes = passes
        self._failures = failures
        self.calls = 0

    def run_in_transaction(self, fn, timeout=None, isolation_level=None):
        self.calls += 1
        if self.calls <= self._passes or self._failures <= 0:
            return self._inner.run_in_transaction(fn, timeout=timeout, isolation_level=isolation_level)

        self._failures -= 1
        error = self._error

        def failing(tx):
            fn(tx)
            raise error

        return self._inner.run_in_transaction(failing, timeout=timeout, isolation_level=isolation_level)

    def health_check(self) -> bool:
        return self._inner.health_check()

    def close(self) -> None:
        self._inner.close()


class FailingMoveStorage(LocalFileStorage):
    """Local storage whose moves fail while ``fail_moves`` is set."""

    fail_moves = False

    def move_file(self, source: str, destination: str) -> None:
        if self.fail_moves:
            raise ArchiveError.storage("Simulated move failure", source=source, destination=destination)
        super().move_file(source, destination)


class BrokenCache:
    """Cache store where every call raises."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise ConnectionError("cache unavailable")

        return fail


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryCacheStore(default_ttl=300, sweep_interval=60, clock=clock)


@pytest.fixture
def store(tmp_path):
    data_store = SqlDataStore.create(f"sqlite:///{tmp_path / 'archive.db'}", timeout=5)
    yield data_store
    data_store.close()


@pytest.fixture
def storage(tmp_path):
    return FailingMoveStorage(tmp_path / "storage")


@pytest.fixture
def files(storage):
    return FileService(storage=storage, max_bytes=1024 * 1024, staging_grace_seconds=0)


@pytest.fixture
def sleeps():
    """Delays requested by the retry policy."""
    return []


@pytest.fixture
def letters(store, files, cache, sleeps):
    return LetterService(
        store=store,
        files=files,
        cache=cache,
        max_attempts=3,
        backoff_base=1.0,
        backoff_max=5.0,
        sleep=sleeps.append,
    )


@pytest.fixture
def reads(store, cache):
    return LetterReadService(store=store, cache=cache, list_ttl=300, entity_ttl=600)


@pytest.fixture
def notifications(store, cache):
    return NotificationService(store=store, cache=cache, ttl=60)


@pytest.fixture
def owner():
    return Actor(user_id="u1")


@pytest.fixture
def stranger():
    return Actor(user_id="u2")


@pytest.fixture
def admin():
    return Actor(user_id="admin", role=UserRole.ADMIN)


@pytest.fixture
def make_draft():
    """Factory for letter drafts with sensible defaults."""

    def factory(**overrides) -> LetterDraft:
        values = {
            "letter_number": "IN-001",
            "subject": "Meeting",
            "counterpart": "Org",
            "primary_date": datetime(2024, 1, 10, tzinfo=timezone.utc),
            "category": LetterCategory.GENERAL,
        }
        values.update(overrides)
        return LetterDraft(**values)

    return factory


@pytest.fixture
def invitation_on():
    def factory(year: int, month: int, day: int, location: str | None = "Hall A") -> Invitation:
        return Invitation(
            event_date=datetime(year, month, day, 9, 0, tzinfo=timezone.utc),
            event_time="09:00",
            event_location=location,
        )

    return factory


@pytest.fixture
def pdf_upload():
    def factory(filename: str = "scan.pdf", content: bytes = PDF_BYTES) -> FileUpload:
        return FileUpload(content=content, filename=filename, content_type="application/pdf")

    return factory
