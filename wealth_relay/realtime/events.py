"""
WebSocket event types and envelope builders.

Every frame is a JSON object ``{"type": ..., "data": {...}}``; outbound frames
also carry a ``timestamp``.
"""
from enum import Enum
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
import logging

from wealth_relay.schemas import (
    ChatMessageResponse,
    InvestorPresence,
    UploadedFileResponse,
)

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """WebSocket event types."""
    # Inbound
    INVESTOR_JOIN = "investor-join"
    INVESTOR_MESSAGE = "investor-message"
    PING = "ping"

    # Inbound and outbound
    ADMIN_MESSAGE = "admin-message"
    FILE_UPLOAD_START = "file-upload-start"

    # Outbound
    NEW_INVESTOR = "new-investor"
    INVESTOR_JOINED = "investor-joined"
    NEW_MESSAGE = "new-message"
    INVESTOR_LEFT = "investor-left"
    FILE_UPLOADED = "file-uploaded"
    PONG = "pong"
    ERROR = "error"


INBOUND_EVENTS = frozenset({
    EventType.INVESTOR_JOIN,
    EventType.INVESTOR_MESSAGE,
    EventType.ADMIN_MESSAGE,
    EventType.FILE_UPLOAD_START,
    EventType.PING,
})


class RealtimeEvent:
    """WebSocket event builder."""

    @staticmethod
    def create_event(event_type: EventType, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create an outbound envelope.

        Args:
            event_type: Type of event
            data: Event data (already JSON-safe)

        Returns:
            Event dictionary
        """
        return {
            "type": event_type.value,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @staticmethod
    def new_investor(presence: InvestorPresence) -> Dict[str, Any]:
        return RealtimeEvent.create_event(EventType.NEW_INVESTOR, presence.to_wire())

    @staticmethod
    def investor_joined(
        investor_id: str,
        outcome: str,
        history: List[ChatMessageResponse],
    ) -> Dict[str, Any]:
        """Acknowledgement sent back to the joining connection only."""
        return RealtimeEvent.create_event(
            EventType.INVESTOR_JOINED,
            {
                "investorId": investor_id,
                "outcome": outcome,
                "history": [message.to_wire() for message in history],
            },
        )

    @staticmethod
    def new_message(message: ChatMessageResponse) -> Dict[str, Any]:
        return RealtimeEvent.create_event(EventType.NEW_MESSAGE, message.to_wire())

    @staticmethod
    def admin_message(message: ChatMessageResponse) -> Dict[str, Any]:
        return RealtimeEvent.create_event(EventType.ADMIN_MESSAGE, message.to_wire())

    @staticmethod
    def investor_left(investor_id: str) -> Dict[str, Any]:
        return RealtimeEvent.create_event(EventType.INVESTOR_LEFT, {"investorId": investor_id})

    @staticmethod
    def file_uploaded(uploaded: UploadedFileResponse, url: str) -> Dict[str, Any]:
        data = uploaded.to_wire()
        data["url"] = url
        return RealtimeEvent.create_event(EventType.FILE_UPLOADED, data)

    @staticmethod
    def file_upload_start(data: Dict[str, Any]) -> Dict[str, Any]:
        return RealtimeEvent.create_event(EventType.FILE_UPLOAD_START, data)

    @staticmethod
    def pong(timestamp: Optional[Any] = None) -> Dict[str, Any]:
        return RealtimeEvent.create_event(EventType.PONG, {"timestamp": timestamp})

    @staticmethod
    def error(error_code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return RealtimeEvent.create_event(
            EventType.ERROR,
            {
                "code": error_code,
                "message": message,
                "details": details or {},
            },
        )
