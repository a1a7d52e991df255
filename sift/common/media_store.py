"""
Media Store

Local storage for generated images (infographics). Files live under one
root directory; links are built from the server's public base URL so
messaging platforms can fetch them, or fall back to ``file://`` URIs when
no public URL is configured.
"""

import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger("sift.common.media_store")

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}

MEDIA_ROUTE = "/media"


class MediaStore:
    """
    Args:
        root: Directory files are written under
        public_base_url: Prefix for public links; empty means file:// links
    """

    def __init__(self, root: Path, public_base_url: str = ""):
        self.root = Path(root)
        self.public_base_url = (public_base_url or "").rstrip("/")

    def save(self, name: str, data: bytes, mime_type: str) -> str:
        """Write ``data`` as ``name`` plus the mime type's extension and return its link."""
        extension = _EXTENSIONS.get(mime_type)
        if extension is None:
            raise ValueError(f"Unsupported media type: {mime_type}")
        relative = Path(f"{name}.{extension}")
        path = self.resolve(str(relative))
        if path is None:
            raise ValueError(f"Invalid media name: {name}")

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)
        logger.info("Stored %d bytes at %s", len(data), path)
        return self.link(relative.as_posix())

    def link(self, relative: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}{MEDIA_ROUTE}/{relative}"
        return (self.root / relative).resolve().as_uri()

    def resolve(self, relative: str) -> Optional[Path]:
        """Absolute path for a stored file, or None if it would escape the root."""
        root = self.root.resolve()
        path = (root / relative).resolve()
        if path == root or root not in path.parents:
            return None
        return path
