"""
Reference classification

Detects which content channels apply to a reference: recognized video
hosts, document-storage pointers, and generic web URLs.
"""

import re
from typing import Optional
from urllib.parse import parse_qs, urlparse

VIDEO_HOSTS = (
    "youtube.com",
    "youtu.be",
    "vimeo.com",
    "loom.com",
)

DRIVE_HOSTS = ("drive.google.com", "docs.google.com")

_DRIVE_PATH_RE = re.compile(r"/(?:file|document|presentation|spreadsheets)/d/([A-Za-z0-9_-]{10,})")
_LH3_PATH_RE = re.compile(r"^/d/([A-Za-z0-9_-]{10,})")


def _host(url: str) -> str:
    try:
        host = urlparse(url).netloc.lower()
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def is_http_url(reference: Optional[str]) -> bool:
    if not reference:
        return False
    try:
        parsed = urlparse(reference.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_video_url(reference: Optional[str]) -> bool:
    if not is_http_url(reference):
        return False
    host = _host(reference)
    return any(host == h or host.endswith("." + h) for h in VIDEO_HOSTS)


def is_drive_url(reference: Optional[str]) -> bool:
    if not is_http_url(reference):
        return False
    host = _host(reference)
    return host in DRIVE_HOSTS or host == "lh3.googleusercontent.com"


def extract_drive_file_id(url: Optional[str]) -> Optional[str]:
    """Pull the file id out of any of the common Drive / Docs URL shapes."""
    if not url:
        return None
    try:
        parsed = urlparse(url)
    except ValueError:
        return None

    match = _DRIVE_PATH_RE.search(parsed.path)
    if match:
        return match.group(1)

    if parsed.netloc.lower() == "lh3.googleusercontent.com":
        match = _LH3_PATH_RE.match(parsed.path)
        if match:
            return match.group(1)

    file_id = parse_qs(parsed.query).get("id")
    if file_id and file_id[0]:
        return file_id[0]
    return None


def drive_download_url(file_id: str) -> str:
    return f"https://drive.google.com/uc?export=download&id={file_id}"


def drive_view_url(file_id: str) -> str:
    """Direct image URL a vision model or browser can load"""
    return f"https://lh3.googleusercontent.com/d/{file_id}"


def document_pointer(reference: Optional[str], document_url: Optional[str]) -> Optional[str]:
    """The document-storage pointer for a record, if it carries one."""
    if document_url:
        return document_url
    if is_drive_url(reference):
        return reference
    return None
