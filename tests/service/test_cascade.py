from typing import Any, Dict, List

import pytest

from coursefs.core.models import ResourceRecord
from coursefs.core.sources import BytesSource
from coursefs.errors import CycleError, RecordStoreError, ResourceValidationError
from coursefs.service.resource_manager import ResourceManager
from coursefs.storage.memory import MemoryBlobStore, MemoryResourceStore
from tests.helpers import make_file, make_folder

pytestmark = pytest.mark.asyncio

COURSE = "course-101"


class FlakyResourceStore(MemoryResourceStore):
    """Fails updates and deletes for the listed paths, and optionally prefix deletes"""

    def __init__(self, failing_paths=(), fail_prefix_delete: bool = False):
        super().__init__()
        self.failing_paths = set(failing_paths)
        self.fail_prefix_delete = fail_prefix_delete

    async def update(self, course_id: str, path: str, patch: Dict[str, Any]):
        if path in self.failing_paths:
            raise RecordStoreError(f"simulated outage for {path}")
        return await super().update(course_id, path, patch)

    async def delete_by_path(self, course_id: str, path: str) -> bool:
        if path in self.failing_paths:
            raise RecordStoreError(f"simulated outage for {path}")
        return await super().delete_by_path(course_id, path)

    async def delete_by_prefix(self, course_id: str, prefix: str) -> List[ResourceRecord]:
        if self.fail_prefix_delete:
            raise RecordStoreError("simulated prefix delete outage")
        return await super().delete_by_prefix(course_id, prefix)


async def _seed(store: MemoryResourceStore, blob_store: MemoryBlobStore, records: List[ResourceRecord]):
    for record in records:
        await store.upsert(record)
        if not record.is_folder:
            await blob_store.put(f"{record.course_id}/{record.path}", b"abc")


async def _paths(store: MemoryResourceStore) -> List[str]:
    return [r.path for r in await store.list(COURSE)]


async def test_rename_folder_rewrites_descendants(manager: ResourceManager, resource_store: MemoryResourceStore,
                                                  blob_store: MemoryBlobStore):
    await _seed(resource_store, blob_store, [
        make_folder("W1"),
        make_folder("W1/labs"),
        make_file("W1/labs/a.pdf"),
        make_folder("W1-Other"),
        make_file("W1-Other/x.txt"),
    ])
    folder = await manager.get(COURSE, "W1")

    result = await manager.rename(folder, "W-One")

    assert result.ok
    assert result.target_path == "W-One"
    assert await _paths(resource_store) == ["W-One", "W-One/labs", "W-One/labs/a.pdf", "W1-Other", "W1-Other/x.txt"]
    moved = await resource_store.get(COURSE, "W-One/labs/a.pdf")
    assert moved.name == "a.pdf"
    assert moved.url == "memory://blobs/course-101/W-One/labs/a.pdf"
    assert blob_store.objects["course-101/W-One/labs/a.pdf"] == b"abc"
    assert "course-101/W1/labs/a.pdf" not in blob_store.objects
    assert "course-101/W1-Other/x.txt" in blob_store.objects
    assert {c.old_path for c in result.applied} == {"W1", "W1/labs", "W1/labs/a.pdf"}


async def test_rename_file(manager: ResourceManager, seeded):
    result = await manager.rename(seeded["syllabus.pdf"], "syllabus-2026.pdf")

    assert [(c.old_path, c.new_path) for c in result.applied] == [("syllabus.pdf", "syllabus-2026.pdf")]
    assert (await manager.get(COURSE, "syllabus-2026.pdf")).name == "syllabus-2026.pdf"


async def test_rename_to_same_name_is_noop(manager: ResourceManager, seeded):
    result = await manager.rename(seeded["Week 1"], "Week 1")
    assert result.ok and result.applied == []


@pytest.mark.parametrize("name", ["", "a/b", ".."])
async def test_rename_rejects_bad_names(manager: ResourceManager, seeded, name):
    with pytest.raises(ResourceValidationError):
        await manager.rename(seeded["Week 1"], name)


async def test_rename_onto_existing_path_is_rejected(manager: ResourceManager, seeded, resource_store):
    with pytest.raises(ResourceValidationError):
        await manager.rename(seeded["Week 1"], "Week 1-Other")
    assert await resource_store.get(COURSE, "Week 1/notes.txt") is not None


async def test_move_to_root(manager: ResourceManager, resource_store: MemoryResourceStore, blob_store: MemoryBlobStore):
    await _seed(resource_store, blob_store, [
        make_folder("A"),
        make_folder("A/B"),
        make_file("A/B/x"),
    ])

    result = await manager.move(await manager.get(COURSE, "A/B"), "")

    assert result.ok
    assert await _paths(resource_store) == ["A", "B", "B/x"]


async def test_move_file_into_folder(manager: ResourceManager, seeded, resource_store):
    result = await manager.move(seeded["syllabus.pdf"], "Week 1/Labs")

    assert result.target_path == "Week 1/Labs/syllabus.pdf"
    assert await resource_store.get(COURSE, "Week 1/Labs/syllabus.pdf") is not None
    assert await resource_store.get(COURSE, "syllabus.pdf") is None


async def test_move_into_own_subtree_is_rejected(manager: ResourceManager, seeded, resource_store):
    before = await _paths(resource_store)

    with pytest.raises(CycleError):
        await manager.move(seeded["Week 1"], "Week 1/Labs")
    with pytest.raises(CycleError):
        await manager.move(seeded["Week 1"], "Week 1")

    assert await _paths(resource_store) == before


async def test_move_into_sibling_with_shared_prefix_is_allowed(manager: ResourceManager, seeded, resource_store):
    result = await manager.move(seeded["Week 1"], "Week 1-Other")

    assert result.ok
    assert await resource_store.get(COURSE, "Week 1-Other/Week 1/Labs/lab1.pdf") is not None


async def test_move_requires_existing_folder(manager: ResourceManager, seeded):
    with pytest.raises(ResourceValidationError):
        await manager.move(seeded["syllabus.pdf"], "Nowhere")
    with pytest.raises(ResourceValidationError):
        await manager.move(seeded["Week 1/notes.txt"], "syllabus.pdf")


async def test_delete_folder_spares_prefix_sibling(manager: ResourceManager, resource_store: MemoryResourceStore,
                                                   blob_store: MemoryBlobStore):
    await _seed(resource_store, blob_store, [
        make_folder("W-One"),
        make_file("W-One/x"),
        make_folder("W-One-Other"),
        make_file("W-One-Other/x"),
    ])

    result = await manager.delete(await manager.get(COURSE, "W-One"))

    assert result.ok
    assert await _paths(resource_store) == ["W-One-Other", "W-One-Other/x"]
    assert "course-101/W-One/x" not in blob_store.objects
    assert "course-101/W-One-Other/x" in blob_store.objects


async def test_delete_file_removes_blob(manager: ResourceManager, seeded, blob_store: MemoryBlobStore):
    result = await manager.delete(seeded["syllabus.pdf"])

    assert [c.old_path for c in result.applied] == ["syllabus.pdf"]
    assert "course-101/syllabus.pdf" not in blob_store.objects


async def test_delete_after_rename_removes_original_blob(manager: ResourceManager, seeded, blob_store: MemoryBlobStore):
    await manager.rename(seeded["Week 1"], "Week One")

    await manager.delete(await manager.get(COURSE, "Week One"))

    assert "course-101/Week 1/notes.txt" not in blob_store.objects
    assert "course-101/Week 1/Labs/lab1.pdf" not in blob_store.objects
    assert not [key for key in blob_store.objects if key.startswith("course-101/Week One/")]


async def test_dry_run_writes_nothing(manager: ResourceManager, seeded, resource_store, blob_store):
    before = await _paths(resource_store)

    renamed = await manager.rename(seeded["Week 1"], "Week One", dry_run=True)
    deleted = await manager.delete(seeded["Week 1"], dry_run=True)

    assert renamed.dry_run
    assert sorted((c.old_path, c.new_path) for c in renamed.applied) == [
        ("Week 1", "Week One"),
        ("Week 1/Labs", "Week One/Labs"),
        ("Week 1/Labs/lab1.pdf", "Week One/Labs/lab1.pdf"),
        ("Week 1/notes.txt", "Week One/notes.txt"),
    ]
    assert sorted(c.old_path for c in deleted.applied) == ["Week 1", "Week 1/Labs", "Week 1/Labs/lab1.pdf",
                                                           "Week 1/notes.txt"]
    assert await _paths(resource_store) == before
    assert "course-101/Week 1/notes.txt" in blob_store.objects


async def test_partial_rename_reports_failures(blob_store: MemoryBlobStore):
    store = FlakyResourceStore(failing_paths={"W1/b.txt"})
    manager = ResourceManager(store, blob_store)
    await _seed(store, blob_store, [make_folder("W1"), make_file("W1/a.txt"), make_file("W1/b.txt")])

    result = await manager.rename(await manager.get(COURSE, "W1"), "W2")

    assert not result.ok
    assert [f.path for f in result.failed] == ["W1/b.txt"]
    assert await _paths(store) == ["W1/b.txt", "W2", "W2/a.txt"]


async def test_root_failure_aborts_cascade(blob_store: MemoryBlobStore):
    store = FlakyResourceStore(failing_paths={"W1"})
    manager = ResourceManager(store, blob_store)
    await _seed(store, blob_store, [make_folder("W1"), make_file("W1/a.txt")])

    result = await manager.rename(await manager.get(COURSE, "W1"), "W2")

    assert [f.path for f in result.failed] == ["W1"]
    assert result.applied == []
    assert await _paths(store) == ["W1", "W1/a.txt"]


async def test_delete_falls_back_to_single_deletes(blob_store: MemoryBlobStore):
    store = FlakyResourceStore(failing_paths={"W/b.txt"}, fail_prefix_delete=True)
    manager = ResourceManager(store, blob_store)
    await _seed(store, blob_store, [make_folder("W"), make_file("W/a.txt"), make_file("W/b.txt")])

    result = await manager.delete(await manager.get(COURSE, "W"))

    assert [f.path for f in result.failed] == ["W/b.txt"]
    assert await _paths(store) == ["W/b.txt"]
    assert "course-101/W/a.txt" not in blob_store.objects
    assert "course-101/W/b.txt" in blob_store.objects


async def test_upload_to_old_path_after_rename_keeps_both_objects(manager: ResourceManager,
                                                                  resource_store: MemoryResourceStore,
                                                                  blob_store: MemoryBlobStore):
    await manager.upload(COURSE, "", [BytesSource("a.txt", b"one")])
    await manager.rename(await manager.get(COURSE, "a.txt"), "b.txt")
    await manager.upload(COURSE, "", [BytesSource("a.txt", b"two")])

    renamed = await manager.get(COURSE, "b.txt")
    assert manager.cascader.blob_key(renamed) == "course-101/b.txt"
    assert blob_store.objects["course-101/b.txt"] == b"one"
    assert blob_store.objects["course-101/a.txt"] == b"two"

    await manager.delete(renamed)

    assert "course-101/b.txt" not in blob_store.objects
    assert blob_store.objects["course-101/a.txt"] == b"two"
    assert await resource_store.get(COURSE, "a.txt") is not None


async def test_move_carries_object_and_url(manager: ResourceManager, seeded, blob_store: MemoryBlobStore):
    await manager.move(seeded["syllabus.pdf"], "Week 1")

    moved = await manager.get(COURSE, "Week 1/syllabus.pdf")
    assert moved.url == "memory://blobs/course-101/Week%201/syllabus.pdf"
    assert blob_store.objects["course-101/Week 1/syllabus.pdf"] == b"abc"
    assert "course-101/syllabus.pdf" not in blob_store.objects


async def test_failed_file_rename_keeps_original_object(blob_store: MemoryBlobStore):
    store = FlakyResourceStore(failing_paths={"a.txt"})
    manager = ResourceManager(store, blob_store)
    await _seed(store, blob_store, [make_file("a.txt")])

    result = await manager.rename(await manager.get(COURSE, "a.txt"), "b.txt")

    assert [f.path for f in result.failed] == ["a.txt"]
    assert blob_store.objects["course-101/a.txt"] == b"abc"
    assert "course-101/b.txt" not in blob_store.objects


async def test_rename_leaves_external_urls_alone(manager: ResourceManager, resource_store: MemoryResourceStore):
    await resource_store.upsert(make_file("link.pdf", url="https://cdn.example.org/link.pdf"))

    result = await manager.rename(await manager.get(COURSE, "link.pdf"), "reading.pdf")

    assert result.ok
    assert (await manager.get(COURSE, "reading.pdf")).url == "https://cdn.example.org/link.pdf"
