import os
import mimetypes
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import magic

from coursefs.core.models import PreviewKind
from coursefs.service.logging import logger

# Initialize mimetypes with standard types
mimetypes.init()

# Mapping of extensions to MIME types and display categories
# This serves as our single source of truth
FILE_TYPE_MAP: Dict[str, Tuple[str, str]] = {
    # Documents
    'pdf': ('application/pdf', 'pdf'),
    'doc': ('application/msword', 'document'),
    'docx': ('application/vnd.openxmlformats-officedocument.wordprocessingml.document', 'document'),
    'xls': ('application/vnd.ms-excel', 'spreadsheet'),
    'xlsx': ('application/vnd.openxmlformats-officedocument.spreadsheetml.sheet', 'spreadsheet'),
    'ppt': ('application/vnd.ms-powerpoint', 'presentation'),
    'pptx': ('application/vnd.openxmlformats-officedocument.presentationml.presentation', 'presentation'),
    'txt': ('text/plain', 'text'),
    'rtf': ('application/rtf', 'text'),
    'md': ('text/markdown', 'text'),
    'csv': ('text/csv', 'spreadsheet'),

    # E-books
    'epub': ('application/epub+zip', 'ebook'),
    'mobi': ('application/x-mobipocket-ebook', 'ebook'),
    'azw': ('application/vnd.amazon.ebook', 'ebook'),

    # Images
    'jpg': ('image/jpeg', 'image'),
    'jpeg': ('image/jpeg', 'image'),
    'png': ('image/png', 'image'),
    'gif': ('image/gif', 'image'),
    'bmp': ('image/bmp', 'image'),
    'svg': ('image/svg+xml', 'image'),
    'webp': ('image/webp', 'image'),

    # Audio
    'mp3': ('audio/mpeg', 'audio'),
    'wav': ('audio/wav', 'audio'),
    'ogg': ('audio/ogg', 'audio'),
    'flac': ('audio/flac', 'audio'),

    # Video
    'mp4': ('video/mp4', 'video'),
    'avi': ('video/x-msvideo', 'video'),
    'mov': ('video/quicktime', 'video'),
    'mkv': ('video/x-matroska', 'video'),
    'webm': ('video/webm', 'video'),

    # Archives
    'zip': ('application/zip', 'archive'),
    'rar': ('application/vnd.rar', 'archive'),
    '7z': ('application/x-7z-compressed', 'archive'),
    'tar': ('application/x-tar', 'archive'),
    'gz': ('application/gzip', 'archive'),
}

# Default for unknown types
DEFAULT_TYPE = ('application/octet-stream', 'other')

# libmagic only needs the head of a file
MAGIC_SNIFF_BYTES = 2048


def _extension(filename: str) -> str:
    _, ext = os.path.splitext(filename or "")
    return ext.lower().lstrip('.')


def _family_category(mime_type: str) -> str:
    # For known MIME types without a custom entry, use the MIME family
    for family in ('text', 'image', 'audio', 'video'):
        if mime_type.startswith(f'{family}/'):
            return family
    if 'zip' in mime_type or 'compressed' in mime_type or 'archive' in mime_type:
        return 'archive'
    if mime_type == 'application/pdf':
        return 'pdf'
    return 'other'


def get_file_type_info(filename: str, file_path: Optional[Union[str, Path]] = None,
                       data: Optional[bytes] = None, use_magic_fallback: bool = True) -> Tuple[str, str]:
    """
    Get the MIME type and display category for a file.

    Args:
        filename: Name (or path) of the file, used for its extension
        file_path: Local file to sniff with libmagic when the extension is unknown
        data: Leading bytes to sniff with libmagic when there is no local file
        use_magic_fallback: Whether to use magic library as fallback for unknown extensions

    Returns:
        Tuple of (mime_type, category)
    """
    ext = _extension(filename)

    # First try our custom mapping
    if ext in FILE_TYPE_MAP:
        return FILE_TYPE_MAP[ext]

    # Next try the mimetypes module
    mime_type = mimetypes.guess_type(filename or "")[0]
    if mime_type:
        return (mime_type, _family_category(mime_type))

    # As a last resort, use magic to detect the MIME type
    if use_magic_fallback and (file_path is not None or data):
        try:
            if file_path is not None:
                detected_mime = magic.from_file(str(file_path), mime=True)
            else:
                detected_mime = magic.from_buffer(data[:MAGIC_SNIFF_BYTES], mime=True)
        except (magic.MagicException, OSError) as e:
            logger.debug(f"Could not sniff content type of {filename}: {e}")
            return DEFAULT_TYPE
        if detected_mime:
            return (detected_mime, _family_category(detected_mime))

    return DEFAULT_TYPE


def get_mime_type(filename: str) -> str:
    """Get just the MIME type for a file."""
    return get_file_type_info(filename)[0]


def get_file_category(filename: str, mime_type: Optional[str] = None) -> str:
    """Display category for a file; a stored MIME type wins over the extension"""
    if mime_type and mime_type != DEFAULT_TYPE[0]:
        ext = _extension(filename)
        if ext in FILE_TYPE_MAP and FILE_TYPE_MAP[ext][0] == mime_type:
            return FILE_TYPE_MAP[ext][1]
        return _family_category(mime_type)
    return get_file_type_info(filename)[1]


def detect_mime_type(filename: str, declared: Optional[str] = None, data: Optional[bytes] = None,
                     file_path: Optional[Union[str, Path]] = None) -> str:
    """
    MIME type for an upload.

    A declared type from the client is kept unless it is missing or the
    generic `application/octet-stream`; then the name and, failing that,
    the content decide.
    """
    if declared and declared != DEFAULT_TYPE[0]:
        return declared
    return get_file_type_info(filename, file_path=file_path, data=data)[0]


def get_preview_kind(mime_type: Optional[str]) -> PreviewKind:
    """Pick the inline viewer for a MIME type; anything unknown opens as a link."""
    if not mime_type:
        return PreviewKind.LINK
    if mime_type.startswith('image/'):
        return PreviewKind.IMAGE
    if mime_type.startswith('video/'):
        return PreviewKind.VIDEO
    if mime_type.startswith('audio/'):
        return PreviewKind.AUDIO
    if mime_type == 'application/pdf':
        return PreviewKind.PDF
    return PreviewKind.LINK


def format_file_size(byte_size):
    """Format byte size to human readable format"""
    if byte_size is None:
        return "Unknown size"

    if byte_size < 1024:
        return f"{byte_size} bytes"
    elif byte_size < 1024 * 1024:
        return f"{byte_size / 1024:.1f} KB"
    elif byte_size < 1024 * 1024 * 1024:
        return f"{byte_size / (1024 * 1024):.1f} MB"
    else:
        return f"{byte_size / (1024 * 1024 * 1024):.1f} GB"
