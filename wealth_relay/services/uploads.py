"""
Upload ledger: metadata of every accepted payment-proof file.
"""
from __future__ import annotations

import threading
from typing import Dict, List

from wealth_relay.models import UploadMetadata, UploadedFile, utcnow
from wealth_relay.utils.ids import MonotonicIdGenerator

FILE_ID_PREFIX = "file_"


class UploadLedger:
    """Append-only record of stored uploads. Input is trusted; the upload
    boundary validates type and size before anything lands here."""

    def __init__(self, lock: threading.RLock, ids: MonotonicIdGenerator):
        self._lock = lock
        self._ids = ids
        self._files: Dict[str, UploadedFile] = {}

    def record(self, metadata: UploadMetadata) -> UploadedFile:
        with self._lock:
            uploaded = UploadedFile(
                id=self._ids.next_id(FILE_ID_PREFIX),
                filename=metadata.filename,
                original_name=metadata.original_name,
                size_bytes=metadata.size_bytes,
                content_type=metadata.content_type,
                uploaded_at=utcnow(),
                remote_address=metadata.remote_address,
                investor_id=metadata.investor_id,
            )
            self._files[uploaded.id] = uploaded
            return uploaded

    def list_all(self) -> List[UploadedFile]:
        with self._lock:
            return list(self._files.values())

    def count(self) -> int:
        with self._lock:
            return len(self._files)
