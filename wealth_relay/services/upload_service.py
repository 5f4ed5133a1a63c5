"""
Payment-proof submission: validate, store, record, announce.
"""
import logging
from typing import Optional

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from wealth_relay.models import UNKNOWN_INVESTOR_ID, UploadMetadata
from wealth_relay.realtime.router import EventRouter
from wealth_relay.schemas import UploadResponse, UploadedFileResponse
from wealth_relay.services.state import RelayState
from wealth_relay.services.storage import LocalDiskStorage
from wealth_relay.utils.file_validation import FileValidator

logger = logging.getLogger(__name__)


async def submit_upload(
    file: Optional[UploadFile],
    investor_id: Optional[str],
    remote_address: Optional[str],
    state: RelayState,
    storage: LocalDiskStorage,
    router: EventRouter,
    max_size: Optional[int] = None,
) -> UploadResponse:
    """
    Accept one payment-proof image.

    Validation happens before anything touches the disk or the ledger; a
    rejected upload leaves no trace. The ``file-uploaded`` event fires once,
    after the ledger entry exists.
    """
    info = await FileValidator.validate_image(file, max_size=max_size)

    stored = await run_in_threadpool(
        storage.save_bytes, info["original_name"], info["data"], info["content_type"]
    )
    uploaded = state.uploads.record(
        UploadMetadata(
            filename=stored.storage_key,
            original_name=info["original_name"],
            size_bytes=stored.size_bytes,
            content_type=stored.content_type,
            remote_address=remote_address,
            investor_id=(investor_id or "").strip() or UNKNOWN_INVESTOR_ID,
        )
    )
    router.announce_upload(uploaded, stored.url)

    return UploadResponse(
        success=True,
        file=UploadedFileResponse.from_file(uploaded),
        url=stored.url,
    )
