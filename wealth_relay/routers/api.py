from typing import List

from fastapi import APIRouter, Depends

from wealth_relay.deps import get_relay_state
from wealth_relay.schemas import (
    ChatMessageResponse,
    InvestorResponse,
    StatsResponse,
    UploadedFileResponse,
)
from wealth_relay.services.state import RelayState

router = APIRouter(prefix="/api", tags=["api"])


@router.get("/uploads", response_model=List[UploadedFileResponse])
def list_uploads(state: RelayState = Depends(get_relay_state)):
    """All recorded uploads, oldest first"""
    return [UploadedFileResponse.from_file(f) for f in state.uploads.list_all()]


@router.get("/investors", response_model=List[InvestorResponse])
def list_investors(state: RelayState = Depends(get_relay_state)):
    """Every investor seen since startup, active or not"""
    return [InvestorResponse.from_session(s) for s in state.registry.list_all()]


@router.get("/chat/{investor_id}", response_model=List[ChatMessageResponse])
def get_chat(investor_id: str, state: RelayState = Depends(get_relay_state)):
    """Conversation history; unknown ids return an empty list"""
    return [ChatMessageResponse.from_message(m) for m in state.conversations.get(investor_id)]


@router.get("/stats", response_model=StatsResponse)
def get_stats(state: RelayState = Depends(get_relay_state)):
    stats = state.stats()
    return StatsResponse(
        total_investors=stats["total_investors"],
        total_files=stats["total_files"],
        online_investors=stats["online_investors"],
    )
