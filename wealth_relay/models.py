"""
In-memory domain records for the relay.

Nothing here is persisted; records live for the lifetime of the process.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


UNKNOWN_INVESTOR_ID = "unknown"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InvestorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Sender(str, Enum):
    INVESTOR = "investor"
    ADMIN = "admin"


class JoinOutcome(str, Enum):
    CREATED = "created"
    REACTIVATED = "reactivated"


@dataclass
class InvestorSession:
    investor_id: str
    connection_id: Optional[str]
    joined_at: datetime
    remote_address: Optional[str]
    user_agent: Optional[str]
    status: InvestorStatus = InvestorStatus.ACTIVE
    last_seen_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == InvestorStatus.ACTIVE

    def snapshot(self) -> "InvestorSession":
        return replace(self)


@dataclass(frozen=True)
class ChatMessage:
    id: str
    sender: Sender
    investor_id: str
    content: str
    created_at: datetime


@dataclass(frozen=True)
class UploadMetadata:
    """What the upload boundary hands to the ledger after validation."""
    filename: str
    original_name: str
    size_bytes: int
    content_type: Optional[str]
    remote_address: Optional[str]
    investor_id: str = UNKNOWN_INVESTOR_ID


@dataclass(frozen=True)
class UploadedFile:
    id: str
    filename: str
    original_name: str
    size_bytes: int
    content_type: Optional[str]
    uploaded_at: datetime
    remote_address: Optional[str]
    investor_id: str = UNKNOWN_INVESTOR_ID


@dataclass(frozen=True)
class JoinResult:
    outcome: JoinOutcome
    session: InvestorSession

    @property
    def created(self) -> bool:
        return self.outcome == JoinOutcome.CREATED
