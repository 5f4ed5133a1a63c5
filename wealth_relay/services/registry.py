"""
Session registry: one presence record per investor id.
"""
from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from wealth_relay.models import (
    InvestorSession,
    InvestorStatus,
    JoinOutcome,
    JoinResult,
    utcnow,
)
from wealth_relay.utils.ids import MonotonicIdGenerator

logger = logging.getLogger(__name__)

INVESTOR_ID_PREFIX = "inv_"


class SessionRegistry:
    """Map investor ids to their current connection and presence status.

    Records are never removed; a disconnect only flips the status and drops
    the connection reference. Callers get copies, never the live records.
    """

    def __init__(self, lock: threading.RLock, ids: MonotonicIdGenerator):
        self._lock = lock
        self._ids = ids
        self._sessions: Dict[str, InvestorSession] = {}
        # connection_id -> investor_id, only for currently bound connections
        self._by_connection: Dict[str, str] = {}

    def join(
        self,
        connection_id: str,
        investor_id: Optional[str] = None,
        remote_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> JoinResult:
        """Create or reactivate the session for ``investor_id``.

        A missing id gets a fresh ``inv_<ms>`` id. Repeating the call with the
        same id rebinds the same record to ``connection_id``.
        """
        with self._lock:
            now = utcnow()
            existing = self._sessions.get(investor_id) if investor_id else None

            if existing is not None:
                if existing.connection_id and existing.connection_id != connection_id:
                    # The older connection no longer owns this investor.
                    self._by_connection.pop(existing.connection_id, None)
                existing.connection_id = connection_id
                existing.status = InvestorStatus.ACTIVE
                existing.last_seen_at = now
                self._by_connection[connection_id] = existing.investor_id
                return JoinResult(JoinOutcome.REACTIVATED, existing.snapshot())

            if not investor_id:
                investor_id = self._ids.next_id(INVESTOR_ID_PREFIX)
                while investor_id in self._sessions:
                    investor_id = self._ids.next_id(INVESTOR_ID_PREFIX)

            session = InvestorSession(
                investor_id=investor_id,
                connection_id=connection_id,
                joined_at=now,
                remote_address=remote_address,
                user_agent=user_agent,
                status=InvestorStatus.ACTIVE,
                last_seen_at=now,
            )
            self._sessions[investor_id] = session
            self._by_connection[connection_id] = investor_id
            return JoinResult(JoinOutcome.CREATED, session.snapshot())

    def mark_disconnected(self, connection_id: str) -> Optional[InvestorSession]:
        """Flip the session bound to ``connection_id`` to inactive.

        Returns None when the connection is not bound (already detached, never
        joined, or superseded by a newer connection for the same investor).
        """
        with self._lock:
            investor_id = self._by_connection.pop(connection_id, None)
            if investor_id is None:
                return None
            session = self._sessions[investor_id]
            session.status = InvestorStatus.INACTIVE
            session.connection_id = None
            session.last_seen_at = utcnow()
            return session.snapshot()

    def get(self, investor_id: str) -> Optional[InvestorSession]:
        with self._lock:
            session = self._sessions.get(investor_id)
            return session.snapshot() if session else None

    def connection_for(self, investor_id: str) -> Optional[str]:
        with self._lock:
            session = self._sessions.get(investor_id)
            return session.connection_id if session else None

    def list_all(self) -> List[InvestorSession]:
        with self._lock:
            return [session.snapshot() for session in self._sessions.values()]

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def count_active(self) -> int:
        with self._lock:
            return sum(1 for session in self._sessions.values() if session.is_active)
