from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, TypeVar, ClassVar, Set, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from coursefs.core import paths


class ResourceKind(str, Enum):
    FILE = "file"
    FOLDER = "folder"


class PreviewKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    PDF = "pdf"
    LINK = "link"       # No inline viewer, open the URL directly


# Define a TypeVar for the mixin
T = TypeVar('T', bound='DBModelMixin')

class DBModelMixin:
    """
    Mixin for Pydantic models that correspond to database tables.
    Provides metadata about field persistence and relationships.
    """
    # Class variables to store metadata
    __db_table__: ClassVar[str] = ""
    __non_persisted_fields__: ClassVar[Set[str]] = set()
    __unique_fields__: ClassVar[Set[str]] = {'id'} # Default unique field is 'id'

    def model_dump_db(self, **kwargs) -> Dict[str, Any]:
        """Dump model data excluding non-persisted fields."""
        return {k: v for k, v in self.model_dump(mode='json').items() if v is not None and (self.__non_persisted_fields__ is None or k not in self.__non_persisted_fields__)}


class ResourceRecord(BaseModel, DBModelMixin):
    """One row of the flat course resource table; files and folders alike."""
    __db_table__ = "course_resources"
    __non_persisted_fields__ = {'created_at', 'updated_at'}
    __unique_fields__ = {'course_id', 'path'}

    course_id: str
    path: str
    name: str = ""
    kind: ResourceKind = ResourceKind.FILE
    size: Optional[int] = None
    url: Optional[str] = None
    mime_type: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('path', mode='before')
    @classmethod
    def normalize_path(cls, value: str) -> str:
        return paths.normalize(value)

    @model_validator(mode='after')
    def check_shape(self) -> 'ResourceRecord':
        if not self.path:
            raise ValueError("Resource path cannot be empty")
        segment = paths.last_segment(self.path)
        if not self.name:
            self.name = segment
        elif self.name != segment:
            raise ValueError(f"Name '{self.name}' does not match path '{self.path}'")
        if self.kind == ResourceKind.FOLDER and any(v is not None for v in (self.size, self.url, self.mime_type)):
            raise ValueError("Folders cannot carry size, url or mime_type")
        return self

    @classmethod
    def folder(cls, course_id: str, path: str) -> 'ResourceRecord':
        return cls(course_id=course_id, path=path, kind=ResourceKind.FOLDER)

    @property
    def is_folder(self) -> bool:
        return self.kind == ResourceKind.FOLDER

    @property
    def parent_path(self) -> str:
        return paths.parent_of(self.path)

    def with_path(self, new_path: str) -> 'ResourceRecord':
        """Copy of this record moved to `new_path` (name follows the path)."""
        new_path = paths.normalize(new_path)
        return self.model_copy(update={'path': new_path, 'name': paths.last_segment(new_path)})


class ResourceNode(BaseModel):
    """A record plus its children, as produced by the tree builder."""
    record: ResourceRecord
    children: List["ResourceNode"] = Field(default_factory=list)

    @property
    def path(self) -> str:
        return self.record.path

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def is_folder(self) -> bool:
        return self.record.is_folder


class PathChange(BaseModel):
    old_path: str
    new_path: Optional[str] = None  # None for deletions


class CascadeFailure(BaseModel):
    path: str
    error: str


class CascadeResult(BaseModel):
    """
    Outcome of a rename, move or delete.

    The store offers no multi-row transaction, so a cascade can stop halfway:
    `applied` lists the writes that succeeded and `failed` the ones that did
    not. Callers should re-fetch and reconcile when `failed` is non-empty.
    """
    operation: Literal["rename", "move", "delete"]
    course_id: str
    source_path: str
    target_path: Optional[str] = None
    dry_run: bool = False
    applied: List[PathChange] = Field(default_factory=list)
    failed: List[CascadeFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


class UploadProgress(BaseModel):
    uploaded_bytes: int = 0
    total_bytes: int = 0

    @property
    def ratio(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return min(1.0, self.uploaded_bytes / self.total_bytes)


class UploadFailure(BaseModel):
    path: str
    error: str


class UploadReport(BaseModel):
    course_id: str
    folder: str = ""
    uploaded: List[ResourceRecord] = Field(default_factory=list)
    failed: List[UploadFailure] = Field(default_factory=list)
    total_bytes: int = 0
    uploaded_bytes: int = 0

    @property
    def ok(self) -> bool:
        return not self.failed


class UploadEvent(BaseModel):
    event: Literal["started", "progress", "file_failed", "finished"]
    progress: UploadProgress
    path: Optional[str] = None
    error: Optional[str] = None
    report: Optional[UploadReport] = None


class PreviewInfo(BaseModel):
    path: str
    url: str
    mime_type: Optional[str] = None
    preview: PreviewKind = PreviewKind.LINK
