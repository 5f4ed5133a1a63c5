from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from typing import Optional

from wealth_relay.deps import get_event_router, get_relay_state, get_settings, get_storage
from wealth_relay.config import Settings
from wealth_relay.rate_limit import limiter, UPLOAD_RATE_LIMIT
from wealth_relay.realtime.router import EventRouter
from wealth_relay.schemas import UploadResponse
from wealth_relay.services import upload_service
from wealth_relay.services.state import RelayState
from wealth_relay.services.storage import LocalDiskStorage

router = APIRouter(tags=["uploads"])


@router.post("/upload", response_model=UploadResponse)
@limiter.limit(UPLOAD_RATE_LIMIT)
async def upload_payment_proof(
    request: Request,
    payment_proof: Optional[UploadFile] = File(None, alias="paymentProof"),
    investor_id: Optional[str] = Form(None, alias="investorId"),
    state: RelayState = Depends(get_relay_state),
    storage: LocalDiskStorage = Depends(get_storage),
    event_router: EventRouter = Depends(get_event_router),
    settings: Settings = Depends(get_settings),
):
    """
    Upload a payment-proof image (multipart field ``paymentProof``).
    Non-images, empty files and files over MAX_UPLOAD_SIZE get a 400.
    """
    return await upload_service.submit_upload(
        file=payment_proof,
        investor_id=investor_id,
        remote_address=request.client.host if request.client else None,
        state=state,
        storage=storage,
        router=event_router,
        max_size=settings.MAX_UPLOAD_SIZE,
    )
