import pytest

from coursefs.core.models import PreviewKind
from coursefs.core.sources import BytesSource, LocalFileSource
from coursefs.utils.file_types import (
    detect_mime_type,
    format_file_size,
    get_file_category,
    get_mime_type,
    get_preview_kind,
)

PDF_HEAD = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<< /Type /Catalog >>\nendobj\n"


def test_mime_type_from_extension():
    assert get_mime_type("lecture.PDF") == "application/pdf"
    assert get_mime_type("photo.jpeg") == "image/jpeg"
    assert get_mime_type("no_extension") == "application/octet-stream"


def test_declared_type_wins_unless_generic():
    assert detect_mime_type("notes.txt", declared="text/x-custom") == "text/x-custom"
    assert detect_mime_type("notes.txt", declared="application/octet-stream") == "text/plain"
    assert detect_mime_type("notes.txt") == "text/plain"


def test_unknown_extension_is_sniffed_from_content():
    assert detect_mime_type("scan", data=PDF_HEAD) == "application/pdf"
    assert BytesSource("scan", PDF_HEAD).content_type == "application/pdf"


@pytest.mark.asyncio
async def test_local_file_without_extension_is_sniffed(tmp_path):
    scan = tmp_path / "scan"
    scan.write_bytes(PDF_HEAD)

    source = await LocalFileSource.from_path(scan)

    assert source.content_type == "application/pdf"


def test_file_category():
    assert get_file_category("slides.pptx") == "presentation"
    assert get_file_category("clip.mp4") == "video"
    assert get_file_category("scan", "application/pdf") == "pdf"
    assert get_file_category("notes.txt", "text/plain") == "text"


def test_preview_kind():
    assert get_preview_kind("image/png") == PreviewKind.IMAGE
    assert get_preview_kind("video/mp4") == PreviewKind.VIDEO
    assert get_preview_kind("audio/mpeg") == PreviewKind.AUDIO
    assert get_preview_kind("application/pdf") == PreviewKind.PDF
    assert get_preview_kind("application/zip") == PreviewKind.LINK
    assert get_preview_kind(None) == PreviewKind.LINK


def test_format_file_size():
    assert format_file_size(None) == "Unknown size"
    assert format_file_size(512) == "512 bytes"
    assert format_file_size(2048) == "2.0 KB"
    assert format_file_size(5 * 1024 * 1024) == "5.0 MB"
