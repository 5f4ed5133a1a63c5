from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, Dict, Any
from datetime import datetime

from wealth_relay.models import (
    ChatMessage,
    InvestorSession,
    InvestorStatus,
    Sender,
    UploadedFile,
)


class WireModel(BaseModel):
    """Base for payloads that keep the browser client's camelCase field names."""
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ============= Investor Schemas =============
class InvestorResponse(WireModel):
    id: str
    connection_id: Optional[str] = Field(None, alias="connectionId")
    join_time: datetime = Field(..., alias="joinTime")
    last_seen: Optional[datetime] = Field(None, alias="lastSeen")
    ip: Optional[str] = None
    user_agent: Optional[str] = Field(None, alias="userAgent")
    status: InvestorStatus

    @classmethod
    def from_session(cls, session: InvestorSession) -> "InvestorResponse":
        return cls(
            id=session.investor_id,
            connection_id=session.connection_id,
            join_time=session.joined_at,
            last_seen=session.last_seen_at,
            ip=session.remote_address,
            user_agent=session.user_agent,
            status=session.status,
        )


class InvestorPresence(WireModel):
    """Payload of the ``new-investor`` announcement."""
    investor_id: str = Field(..., alias="investorId")
    join_time: datetime = Field(..., alias="joinTime")
    ip: Optional[str] = None
    returning: bool = False

    @classmethod
    def from_session(cls, session: InvestorSession, returning: bool = False) -> "InvestorPresence":
        return cls(
            investor_id=session.investor_id,
            join_time=session.joined_at,
            ip=session.remote_address,
            returning=returning,
        )


# ============= Chat Schemas =============
class ChatMessageResponse(WireModel):
    id: str
    type: Sender
    content: str
    timestamp: datetime
    investor_id: str = Field(..., alias="investorId")

    @classmethod
    def from_message(cls, message: ChatMessage) -> "ChatMessageResponse":
        return cls(
            id=message.id,
            type=message.sender,
            content=message.content,
            timestamp=message.created_at,
            investor_id=message.investor_id,
        )


# ============= Upload Schemas =============
class UploadedFileResponse(WireModel):
    id: str
    filename: str
    original_name: str = Field(..., alias="originalName")
    size: int
    content_type: Optional[str] = Field(None, alias="contentType")
    upload_time: datetime = Field(..., alias="uploadTime")
    ip: Optional[str] = None
    investor_id: str = Field(..., alias="investorId")

    @classmethod
    def from_file(cls, uploaded: UploadedFile) -> "UploadedFileResponse":
        return cls(
            id=uploaded.id,
            filename=uploaded.filename,
            original_name=uploaded.original_name,
            size=uploaded.size_bytes,
            content_type=uploaded.content_type,
            upload_time=uploaded.uploaded_at,
            ip=uploaded.remote_address,
            investor_id=uploaded.investor_id,
        )


class UploadResponse(WireModel):
    success: bool = True
    file: UploadedFileResponse
    url: str


# ============= Stats Schemas =============
class StatsResponse(WireModel):
    total_investors: int = Field(..., alias="totalInvestors")
    total_files: int = Field(..., alias="totalFiles")
    online_investors: int = Field(..., alias="onlineInvestors")
