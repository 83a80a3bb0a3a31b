#!/usr/bin/env python3
"""
Demo script for the letter archive.

This script walks through the write protocol, cached reads, notifications
and the storage sweep against a throwaway SQLite database and storage root.
"""

import tempfile
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

from letter_archive import (
    Actor,
    ArchiveError,
    Direction,
    FileService,
    LetterReadService,
    LetterService,
    LocalFileStorage,
    MaintenanceService,
    MemoryCacheStore,
    NotificationService,
    SqlDataStore,
    UserRole,
)
from letter_archive.entities import (
    FileUpload,
    Invitation,
    LetterCategory,
    LetterChanges,
    LetterDraft,
    LetterFilters,
    NotificationFilters,
    Pagination,
)

SAMPLE_PDF = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF\n"


def print_section(title: str) -> None:
    """Print a section header."""
    print("\n" + "=" * 70)
    print(f"  {title}")
    print("=" * 70)


def demo_write_protocol(letters: LetterService, reads: LetterReadService, staff: Actor) -> str:
    """Create and update a letter with an attachment."""
    print_section("Write Protocol")

    now = datetime.now(timezone.utc)
    draft = LetterDraft(
        letter_number="IN-2024-001",
        subject="Invitation to the annual meeting",
        counterpart="Regional Office",
        primary_date=now,
        category=LetterCategory.INVITATION,
        invitation=Invitation(
            event_date=now + timedelta(days=7),
            event_time="09:00",
            event_location="Main Hall",
        ),
    )
    upload = FileUpload(content=SAMPLE_PDF, filename="undangan rapat.pdf", content_type="application/pdf")

    start = time.time()
    letter = letters.create_letter_with_file(draft, upload, staff, Direction.INCOMING)
    duration = (time.time() - start) * 1000
    print(f"\n  ✓ Created {letter.letter_number} in {duration:.2f}ms")
    print(f"    File: {letter.attachment.file_name} -> {letter.attachment.file_path}")

    print("\n🔁 Creating the same number again:")
    try:
        letters.create_letter_with_file(draft, None, staff, Direction.INCOMING)
    except ArchiveError as e:
        print(f"  ✗ {e.code}: {e.message}")

    updated = letters.update_letter_with_file(
        letter.id,
        LetterChanges({"subject": "Invitation to the annual meeting (rescheduled)"}),
        None,
        staff,
        Direction.INCOMING,
    )
    print(f"\n  ✓ Updated subject: {updated.subject}")
    print(f"    Read back: {reads.get_entity(Direction.INCOMING, letter.id, staff)['subject']}")
    return letter.id


def demo_cached_reads(reads: LetterReadService, cache: MemoryCacheStore, staff: Actor) -> None:
    """Show the read-through cache at work."""
    print_section("Cached Reads")

    for attempt in ("cold", "warm"):
        start = time.time()
        page = reads.get_list(Direction.INCOMING, LetterFilters(), Pagination(), staff)
        duration = (time.time() - start) * 1000
        print(f"  {attempt:<5} read: {page['pagination']['total']} letter(s) in {duration:.2f}ms")

    stats = cache.get_stats()
    print(f"\n📊 Cache: hits={stats['hits']} misses={stats['misses']} keys={stats['keys']}")


def demo_notifications(notifications: NotificationService, staff: Actor) -> None:
    """List the notifications produced by the writes above."""
    print_section("Notifications")

    result = notifications.list_notifications(staff, NotificationFilters(), Pagination(sort_order="asc"))
    for item in result["data"]:
        audience = item["user_id"] or "everyone"
        print(f"  [{item['type']}] {item['title']} ({audience})")
        print(f"      {item['message']}")
    print(f"\n  Unread: {result['unread_count']}")


def demo_storage_sweep(letters: LetterService, maintenance: MaintenanceService, admin: Actor, letter_id: str) -> None:
    """Delete the letter and reconcile storage."""
    print_section("Storage Sweep")

    letters.delete_letter_with_file(letter_id, admin, Direction.INCOMING)
    print("  ✓ Letter deleted by admin")

    report = maintenance.reconcile_storage()
    print(f"  Scanned: {report.scanned}, deleted: {report.deleted_count}, failed: {len(report.failed)}")


def main() -> None:
    """Run all demos."""
    print("\n🚀 Letter Archive Demo")
    print("=" * 70)

    with tempfile.TemporaryDirectory() as workdir:
        root = Path(workdir)
        cache = MemoryCacheStore.create()
        store = SqlDataStore.create(f"sqlite:///{root / 'demo.db'}")
        files = FileService.create(storage=LocalFileStorage.create(root / "storage"))
        letters = LetterService.create(store=store, files=files, cache=cache)
        reads = LetterReadService.create(store=store, cache=cache)
        notifications = NotificationService(store=store, cache=cache)
        maintenance = MaintenanceService.create(store=store, files=files, cache=cache)

        staff = Actor(user_id="staff-1")
        admin = Actor(user_id="admin-1", role=UserRole.ADMIN)

        try:
            with cache:
                letter_id = demo_write_protocol(letters, reads, staff)
                demo_cached_reads(reads, cache, staff)
                demo_notifications(notifications, staff)
                demo_storage_sweep(letters, maintenance, admin, letter_id)

            print("\n" + "=" * 70)
            print("✅ Demo completed successfully!")
            print("=" * 70)

        except ArchiveError as e:
            print(f"\n❌ Error: {e.code} {e.message}")
        finally:
            store.close()


if __name__ == "__main__":
    main()
