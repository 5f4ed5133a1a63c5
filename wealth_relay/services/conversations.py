"""
Per-investor chat history.
"""
from __future__ import annotations

import threading
from typing import Dict, List

from wealth_relay.exceptions import UnknownInvestor
from wealth_relay.models import ChatMessage, Sender, utcnow
from wealth_relay.utils.ids import MonotonicIdGenerator

MESSAGE_ID_PREFIX = "msg_"


class ConversationStore:
    """Append-only message logs keyed by investor id.

    Writes are strict (the conversation must exist), reads are lenient
    (an unknown id reads as an empty history).
    """

    def __init__(self, lock: threading.RLock, ids: MonotonicIdGenerator):
        self._lock = lock
        self._ids = ids
        self._conversations: Dict[str, List[ChatMessage]] = {}

    def open(self, investor_id: str) -> bool:
        """Create an empty conversation. Returns False if it already existed."""
        with self._lock:
            if investor_id in self._conversations:
                return False
            self._conversations[investor_id] = []
            return True

    def exists(self, investor_id: str) -> bool:
        with self._lock:
            return investor_id in self._conversations

    def append(self, investor_id: str, sender: Sender, content: str) -> ChatMessage:
        with self._lock:
            messages = self._conversations.get(investor_id)
            if messages is None:
                raise UnknownInvestor(investor_id)
            message = ChatMessage(
                id=self._ids.next_id(MESSAGE_ID_PREFIX),
                sender=Sender(sender),
                investor_id=investor_id,
                content=content,
                created_at=utcnow(),
            )
            messages.append(message)
            return message

    def get(self, investor_id: str) -> List[ChatMessage]:
        with self._lock:
            return list(self._conversations.get(investor_id, ()))
