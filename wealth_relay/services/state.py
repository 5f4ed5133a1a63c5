"""
Process-wide relay state, owned by the application instance.
"""
from __future__ import annotations

import threading
from typing import Dict, Optional

from wealth_relay.services.conversations import ConversationStore
from wealth_relay.services.registry import SessionRegistry
from wealth_relay.services.uploads import UploadLedger
from wealth_relay.utils.ids import MonotonicIdGenerator


class RelayState:
    """Container for the registry, the conversation store and the upload ledger.

    All three share one re-entrant lock: a writer holding ``lock`` can touch
    several stores atomically, and readers always see whole records.
    """

    def __init__(self, ids: Optional[MonotonicIdGenerator] = None):
        self.lock = threading.RLock()
        self.ids = ids or MonotonicIdGenerator()
        self.registry = SessionRegistry(self.lock, self.ids)
        self.conversations = ConversationStore(self.lock, self.ids)
        self.uploads = UploadLedger(self.lock, self.ids)

    def stats(self) -> Dict[str, int]:
        with self.lock:
            return {
                "total_investors": self.registry.count(),
                "total_files": self.uploads.count(),
                "online_investors": self.registry.count_active(),
            }
