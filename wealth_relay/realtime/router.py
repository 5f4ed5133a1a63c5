"""
Event router: the per-connection state machine behind the WebSocket endpoint.

A connection starts ``unidentified``, becomes ``identified`` once it sends
``investor-join`` and ends ``detached``. The router is the only writer of the
relay state; it mutates under ``RelayState.lock`` and delivers after the lock
is released. Every delivery names its audience explicitly.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from wealth_relay.exceptions import AppException, DeliveryUnreachable, ValidationError
from wealth_relay.models import JoinResult, Sender, UploadedFile
from wealth_relay.realtime.events import EventType, INBOUND_EVENTS, RealtimeEvent
from wealth_relay.realtime.manager import Connection, ConnectionManager
from wealth_relay.schemas import (
    ChatMessageResponse,
    InvestorPresence,
    UploadedFileResponse,
)
from wealth_relay.services.state import RelayState

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    UNIDENTIFIED = "unidentified"
    IDENTIFIED = "identified"
    DETACHED = "detached"


class Audience(str, Enum):
    """Who receives a routed event.

    Roles are not authenticated, so every open connection counts as an
    admin observer.
    """
    ADMINS = "admins"
    INVESTOR = "investor"
    ADMINS_AND_INVESTOR = "admins_and_investor"


@dataclass
class ConnectionContext:
    connection_id: str
    remote_address: Optional[str] = None
    user_agent: Optional[str] = None
    state: ConnectionState = ConnectionState.UNIDENTIFIED
    investor_id: Optional[str] = None


def _optional_string(data: Dict[str, Any], field: str) -> Optional[str]:
    value = data.get(field)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError(f"'{field}' must be a string", details={"field": field})
    return value


def _required_string(data: Dict[str, Any], field: str) -> str:
    value = _optional_string(data, field)
    if value is None:
        raise ValidationError(f"'{field}' is required", details={"field": field})
    return value


def _message_text(data: Dict[str, Any]) -> str:
    """Chat content is opaque text; an empty string is still a message."""
    value = data.get("message")
    if value is None:
        raise ValidationError("'message' is required", details={"field": "message"})
    if not isinstance(value, str):
        raise ValidationError("'message' must be a string", details={"field": "message"})
    return value


def parse_envelope(message: Any) -> Tuple[EventType, Dict[str, Any]]:
    """Split an inbound frame into its event type and payload.

    Accepts ``{"type": t, "data": {...}}`` and the flat ``{"type": t, ...}``.
    """
    if not isinstance(message, dict):
        raise ValidationError("Event must be a JSON object")
    raw_type = message.get("type")
    try:
        event_type = EventType(raw_type)
    except ValueError:
        raise ValidationError(f"Unknown event type: {raw_type}", details={"type": raw_type}) from None
    if event_type not in INBOUND_EVENTS:
        raise ValidationError(f"Event type not accepted from clients: {raw_type}", details={"type": raw_type})

    if "data" in message:
        data = message["data"]
        if data is None:
            data = {}
    else:
        data = {k: v for k, v in message.items() if k != "type"}
    if not isinstance(data, dict):
        raise ValidationError("Event data must be a JSON object")
    return event_type, data


class EventRouter:
    """Apply connection events to the relay state and fan the results out."""

    def __init__(self, state: RelayState, manager: ConnectionManager):
        self.state = state
        self.manager = manager

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------
    def open(self, connection: Connection) -> ConnectionContext:
        return ConnectionContext(
            connection_id=connection.id,
            remote_address=connection.remote_address,
            user_agent=connection.user_agent,
        )

    def close(self, ctx: ConnectionContext) -> None:
        """Transport disconnect. Tolerates repeated calls."""
        if ctx.state != ConnectionState.IDENTIFIED:
            ctx.state = ConnectionState.DETACHED
            return

        investor_id = ctx.investor_id
        ctx.state = ConnectionState.DETACHED
        session = self.state.registry.mark_disconnected(ctx.connection_id)
        if session is None:
            # A newer connection already owns this investor.
            logger.info(
                "Stale connection closed",
                extra={"connection_id": ctx.connection_id, "investor_id": investor_id},
            )
            return

        logger.info(
            "Investor left",
            extra={"connection_id": ctx.connection_id, "investor_id": investor_id, "event": "investor-left"},
        )
        self.deliver(RealtimeEvent.investor_left(session.investor_id), Audience.ADMINS)

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------
    def handle(self, ctx: ConnectionContext, message: Any) -> None:
        """Process one inbound frame. Errors go back to the sender only."""
        try:
            event_type, data = parse_envelope(message)
            if event_type == EventType.INVESTOR_JOIN:
                self.on_investor_join(ctx, data)
            elif event_type == EventType.INVESTOR_MESSAGE:
                self.on_investor_message(ctx, data)
            elif event_type == EventType.ADMIN_MESSAGE:
                self.on_admin_message(ctx, data)
            elif event_type == EventType.FILE_UPLOAD_START:
                self.on_file_upload_start(ctx, data)
            elif event_type == EventType.PING:
                self.manager.send_personal_message(RealtimeEvent.pong(data.get("timestamp")), ctx.connection_id)
        except AppException as exc:
            logger.warning(
                f"Rejected event: {exc.error_code} - {exc.message}",
                extra={
                    "connection_id": ctx.connection_id,
                    "investor_id": ctx.investor_id,
                    "error_code": exc.error_code,
                },
            )
            self.manager.send_personal_message(
                RealtimeEvent.error(exc.error_code, exc.message, exc.details),
                ctx.connection_id,
            )

    def on_investor_join(self, ctx: ConnectionContext, data: Dict[str, Any]) -> JoinResult:
        requested_id = _optional_string(data, "investorId")
        registry = self.state.registry
        left = None

        with self.state.lock:
            if ctx.investor_id and ctx.investor_id != requested_id:
                left = registry.mark_disconnected(ctx.connection_id)
            result = registry.join(
                ctx.connection_id,
                investor_id=requested_id,
                remote_address=ctx.remote_address,
                user_agent=ctx.user_agent,
            )
            investor_id = result.session.investor_id
            self.state.conversations.open(investor_id)
            history = self.state.conversations.get(investor_id)

        ctx.investor_id = investor_id
        ctx.state = ConnectionState.IDENTIFIED

        if left is not None:
            self.deliver(RealtimeEvent.investor_left(left.investor_id), Audience.ADMINS)

        logger.info(
            f"Investor joined ({result.outcome.value})",
            extra={"connection_id": ctx.connection_id, "investor_id": investor_id, "event": "investor-join"},
        )
        self.manager.send_personal_message(
            RealtimeEvent.investor_joined(
                investor_id,
                result.outcome.value,
                [ChatMessageResponse.from_message(m) for m in history],
            ),
            ctx.connection_id,
        )
        presence = InvestorPresence.from_session(result.session, returning=not result.created)
        self.deliver(RealtimeEvent.new_investor(presence), Audience.ADMINS)
        return result

    def on_investor_message(self, ctx: ConnectionContext, data: Dict[str, Any]) -> None:
        if ctx.state != ConnectionState.IDENTIFIED or not ctx.investor_id:
            raise ValidationError("Send investor-join before investor-message")
        if self.state.registry.connection_for(ctx.investor_id) != ctx.connection_id:
            raise ValidationError(
                "Investor is bound to a newer connection",
                details={"investor_id": ctx.investor_id},
            )
        content = _message_text(data)

        message = self.state.conversations.append(ctx.investor_id, Sender.INVESTOR, content)
        logger.info(
            "Investor message",
            extra={"connection_id": ctx.connection_id, "investor_id": ctx.investor_id, "event": "investor-message"},
        )
        self.deliver(RealtimeEvent.new_message(ChatMessageResponse.from_message(message)), Audience.ADMINS)

    def on_admin_message(self, ctx: ConnectionContext, data: Dict[str, Any]) -> None:
        investor_id = _required_string(data, "investorId")
        content = _message_text(data)

        # Raises UnknownInvestor for ids that never joined.
        message = self.state.conversations.append(investor_id, Sender.ADMIN, content)
        logger.info(
            "Admin message",
            extra={"connection_id": ctx.connection_id, "investor_id": investor_id, "event": "admin-message"},
        )
        wire = ChatMessageResponse.from_message(message)
        try:
            self.deliver(RealtimeEvent.admin_message(wire), Audience.INVESTOR, investor_id=investor_id)
        except DeliveryUnreachable as exc:
            logger.info(exc.message, extra={"investor_id": investor_id, "error_code": exc.error_code})
        self.deliver(RealtimeEvent.new_message(wire), Audience.ADMINS_AND_INVESTOR, investor_id=investor_id)

    def on_file_upload_start(self, ctx: ConnectionContext, data: Dict[str, Any]) -> None:
        self.deliver(RealtimeEvent.file_upload_start(data), Audience.ADMINS)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    def announce_upload(self, uploaded: UploadedFile, url: str) -> int:
        logger.info(
            f"File uploaded: {uploaded.original_name}",
            extra={"investor_id": uploaded.investor_id, "event": "file-uploaded"},
        )
        return self.deliver(
            RealtimeEvent.file_uploaded(UploadedFileResponse.from_file(uploaded), url),
            Audience.ADMINS,
        )

    def recipients(self, audience: Audience, investor_id: Optional[str] = None) -> List[str]:
        recipients: List[str] = []
        if audience in (Audience.ADMINS, Audience.ADMINS_AND_INVESTOR):
            recipients.extend(self.manager.connection_ids())
        if audience in (Audience.INVESTOR, Audience.ADMINS_AND_INVESTOR):
            target = self.state.registry.connection_for(investor_id) if investor_id else None
            if not self.manager.is_connected(target):
                if audience == Audience.INVESTOR:
                    raise DeliveryUnreachable(investor_id or "")
            elif target not in recipients:
                recipients.append(target)
        return recipients

    def deliver(self, event: Dict[str, Any], audience: Audience, investor_id: Optional[str] = None) -> int:
        """Queue ``event`` for ``audience``. Returns the number of connections reached."""
        return self.manager.send_many(event, self.recipients(audience, investor_id))
