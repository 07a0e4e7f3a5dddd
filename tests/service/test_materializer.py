import asyncio

import pytest

from coursefs.errors import ResourceValidationError
from coursefs.service.materializer import FolderMaterializer
from coursefs.storage.memory import MemoryBlobStore, MemoryResourceStore
from tests.helpers import make_file

pytestmark = pytest.mark.asyncio


@pytest.fixture
def materializer(resource_store: MemoryResourceStore, blob_store: MemoryBlobStore) -> FolderMaterializer:
    return FolderMaterializer(resource_store, blob_store)


async def test_ensure_ancestors_creates_each_level(materializer: FolderMaterializer, resource_store: MemoryResourceStore):
    folders = await materializer.ensure_ancestors("c1", "A/B/c.txt")

    assert [f.path for f in folders] == ["A", "A/B"]
    stored = await resource_store.list("c1")
    assert [(r.path, r.is_folder) for r in stored] == [("A", True), ("A/B", True)]


async def test_concurrent_materialization_creates_one_row_per_folder(materializer: FolderMaterializer,
                                                                     resource_store: MemoryResourceStore):
    await asyncio.gather(*(materializer.ensure_ancestors("c1", f"A/B/file{i}.txt") for i in range(20)))

    stored = await resource_store.list("c1")
    assert [r.path for r in stored] == ["A", "A/B"]


async def test_root_level_path_needs_no_folders(materializer: FolderMaterializer):
    assert await materializer.ensure_ancestors("c1", "top.txt") == []


async def test_course_root_marker_written_once(materializer: FolderMaterializer, blob_store: MemoryBlobStore):
    assert await materializer.ensure_course_root("c1")
    assert "c1/.keep" in blob_store.objects

    del blob_store.objects["c1/.keep"]
    assert not await materializer.ensure_course_root("c1")
    assert "c1/.keep" not in blob_store.objects


async def test_course_root_left_alone_when_not_empty(materializer: FolderMaterializer, blob_store: MemoryBlobStore):
    await blob_store.put("c1/existing.txt", b"x")
    assert not await materializer.ensure_course_root("c1")
    assert "c1/.keep" not in blob_store.objects


async def test_create_folder(materializer: FolderMaterializer, resource_store: MemoryResourceStore):
    folder = await materializer.create_folder("c1", "Week 1/Labs", " Lab 2 ")

    assert folder.path == "Week 1/Labs/Lab 2"
    assert folder.is_folder
    assert [r.path for r in await resource_store.list("c1")] == ["Week 1", "Week 1/Labs", "Week 1/Labs/Lab 2"]

    again = await materializer.create_folder("c1", "Week 1/Labs", "Lab 2")
    assert again.path == folder.path
    assert len(await resource_store.list("c1")) == 3


@pytest.mark.parametrize("name", ["", "a/b", ".."])
async def test_create_folder_rejects_bad_names(materializer: FolderMaterializer, resource_store: MemoryResourceStore, name):
    with pytest.raises(ResourceValidationError):
        await materializer.create_folder("c1", "", name)
    assert await resource_store.list("c1") == []


async def test_create_folder_over_file_is_rejected(materializer: FolderMaterializer, resource_store: MemoryResourceStore):
    await resource_store.upsert(make_file("notes", course_id="c1"))
    with pytest.raises(ResourceValidationError):
        await materializer.create_folder("c1", "", "notes")


async def test_ensure_ancestors_rejects_file_in_the_way(materializer: FolderMaterializer,
                                                        resource_store: MemoryResourceStore):
    await resource_store.upsert(make_file("A", course_id="c1"))

    with pytest.raises(ResourceValidationError):
        await materializer.ensure_ancestors("c1", "A/x.txt")

    assert not (await resource_store.get("c1", "A")).is_folder
