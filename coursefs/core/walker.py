"""
Expand dropped entries (files and whole directories) into upload sources.

A drop hands over a handful of top-level handles, some of which are
directories. The walker does a breadth-first traversal with an explicit
queue, so arbitrarily deep trees never grow the call stack, and yields one
`UploadSource` per leaf file with its relative path set to the segments
traversed from the dropped root. Directory listings are paginated and are
read until an empty page comes back.

Empty directories yield nothing: only files reach the upload pipeline, and
folders are materialized from the files' paths.
"""
from abc import ABC, abstractmethod
from collections import deque
from pathlib import Path
from typing import AsyncIterator, Deque, Dict, Iterable, List, Optional, Tuple, Union

import aiofiles.os

from coursefs.core import paths
from coursefs.core.sources import BytesSource, LocalFileSource, UploadSource
from coursefs.service.logging import logger

DEFAULT_PAGE_SIZE = 100


class DirectoryReader(ABC):
    @abstractmethod
    async def read_entries(self) -> List["DropEntry"]:
        """Return the next page of children; an empty list once drained."""
        pass


class DropEntry(ABC):
    """A dropped handle: either a leaf file or a directory."""
    name: str

    @property
    @abstractmethod
    def is_directory(self) -> bool:
        pass

    @property
    def is_file(self) -> bool:
        return not self.is_directory

    @abstractmethod
    async def file(self, relative_path: str) -> UploadSource:
        """Resolve a file entry to an upload source"""
        pass

    @abstractmethod
    def create_reader(self) -> DirectoryReader:
        """Reader over a directory entry's immediate children"""
        pass


async def walk_entries(entries: Iterable[DropEntry]) -> AsyncIterator[UploadSource]:
    """
    Breadth-first walk of the dropped entries, yielding leaf files.

    Single pass: the generator cannot be restarted.
    """
    queue: Deque[Tuple[DropEntry, str]] = deque((entry, "") for entry in entries)
    while queue:
        entry, prefix = queue.popleft()
        relative_path = paths.join(prefix, entry.name)
        if entry.is_directory:
            reader = entry.create_reader()
            while True:
                page = await reader.read_entries()
                if not page:
                    break
                queue.extend((child, relative_path) for child in page)
        else:
            yield await entry.file(relative_path)


async def collect_files(entries: Iterable[DropEntry]) -> List[UploadSource]:
    """Drain `walk_entries` into a list"""
    return [source async for source in walk_entries(entries)]


class _ListReader(DirectoryReader):
    """Serves a fixed listing in pages"""

    def __init__(self, load, page_size: int = DEFAULT_PAGE_SIZE):
        self._load = load
        self._entries: Optional[List[DropEntry]] = None
        self._offset = 0
        self.page_size = page_size

    async def read_entries(self) -> List["DropEntry"]:
        if self._entries is None:
            self._entries = await self._load()
        page = self._entries[self._offset:self._offset + self.page_size]
        self._offset += len(page)
        return page


class LocalDropEntry(DropEntry):
    """A file or directory on the local filesystem"""

    def __init__(self, path: Union[str, Path], page_size: int = DEFAULT_PAGE_SIZE):
        self.path = Path(path)
        self.name = self.path.name
        self.page_size = page_size
        self._is_dir: Optional[bool] = None

    @property
    def is_directory(self) -> bool:
        if self._is_dir is None:
            self._is_dir = self.path.is_dir()
        return self._is_dir

    async def file(self, relative_path: str) -> UploadSource:
        return await LocalFileSource.from_path(self.path, relative_path=relative_path)

    def create_reader(self) -> DirectoryReader:
        return _ListReader(self._list_children, self.page_size)

    async def _list_children(self) -> List[DropEntry]:
        children: List[DropEntry] = []
        with await aiofiles.os.scandir(self.path) as entries:
            for entry in sorted(entries, key=lambda e: e.name):
                if entry.is_dir():
                    child = LocalDropEntry(entry.path, self.page_size)
                    child._is_dir = True
                elif entry.is_file():
                    child = LocalDropEntry(entry.path, self.page_size)
                    child._is_dir = False
                else:
                    logger.debug(f"Skipping non-regular entry {entry.path}")
                    continue
                children.append(child)
        return children

    def __repr__(self) -> str:
        return f"LocalDropEntry({str(self.path)!r})"


# Nested mapping: directory name -> mapping, file name -> bytes
MemoryTree = Dict[str, Union[bytes, "MemoryTree"]]


class MemoryDropEntry(DropEntry):
    """An in-memory file or directory"""

    def __init__(self, name: str, content: Union[bytes, MemoryTree], content_type: Optional[str] = None,
                 page_size: int = DEFAULT_PAGE_SIZE):
        self.name = name
        self.content = content
        self.content_type = content_type
        self.page_size = page_size

    @classmethod
    def from_tree(cls, tree: MemoryTree, page_size: int = DEFAULT_PAGE_SIZE) -> List["MemoryDropEntry"]:
        """Top-level entries for a nested mapping"""
        return [cls(name, content, page_size=page_size) for name, content in tree.items()]

    @property
    def is_directory(self) -> bool:
        return isinstance(self.content, dict)

    async def file(self, relative_path: str) -> UploadSource:
        return BytesSource(self.name, self.content, content_type=self.content_type, relative_path=relative_path)

    def create_reader(self) -> DirectoryReader:
        async def load():
            return MemoryDropEntry.from_tree(self.content, self.page_size)
        return _ListReader(load, self.page_size)

    def __repr__(self) -> str:
        return f"MemoryDropEntry({self.name!r})"
