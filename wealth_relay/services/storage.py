import os
import mimetypes
import secrets
import time
from dataclasses import dataclass
from typing import Optional

from wealth_relay.config import settings


@dataclass
class StoredObject:
    storage_key: str
    url: str
    content_type: str
    size_bytes: int


def _guess_content_type(path: str, fallback: str = "application/octet-stream") -> str:
    return mimetypes.guess_type(path)[0] or fallback


def generate_storage_name(original_name: str) -> str:
    """``<epoch-ms>-<9 random digits><ext>``, keeping the original extension."""
    ext = os.path.splitext(original_name or "")[1].lower()
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{ext}"


class LocalDiskStorage:
    """Write uploaded bytes under ``base_dir`` and expose them under ``url_prefix``."""

    def __init__(self, base_dir: Optional[str] = None, url_prefix: Optional[str] = None) -> None:
        self.base_dir = base_dir or settings.UPLOAD_DIR
        self.url_prefix = url_prefix or settings.UPLOAD_URL_PREFIX

    def ensure_dir(self) -> None:
        os.makedirs(self.base_dir, exist_ok=True)

    def _full_path(self, path: str) -> str:
        cleaned = os.path.basename(path.replace("\\", "/"))
        return os.path.join(self.base_dir, cleaned)

    def save_bytes(self, original_name: str, data: bytes, content_type: Optional[str] = None) -> StoredObject:
        """Store ``data`` under a fresh collision-resistant name.

        Opening with ``xb`` fails instead of overwriting, so a name clash just
        draws another name.
        """
        self.ensure_dir()
        while True:
            name = generate_storage_name(original_name)
            full_path = self._full_path(name)
            try:
                with open(full_path, "xb") as handle:
                    handle.write(data)
                break
            except FileExistsError:
                continue
        return StoredObject(
            storage_key=name,
            url=self.get_url(name),
            content_type=content_type or _guess_content_type(name),
            size_bytes=len(data),
        )

    def get_url(self, path: str) -> str:
        return f"{self.url_prefix.rstrip('/')}/{path.lstrip('/')}"

