# This module keeps the Bizum transactions that wait for an explicit user confirmation.
# Version: 0.1.0

from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional
from uuid import uuid4

from ai_agent.core.config import get_settings
from ai_agent.core.exceptions import ConfirmationExpiredError, ConfirmationNotFoundError
from ai_agent.models.domain import PendingConfirmation, TransactionData, utcnow
from ai_agent.utils.logger import console


class ConfirmationManager:
    """
    In-memory table of pending confirmations, owned by the Bizum tool.

    Entries expire after a fixed window and are collected lazily: any lookup
    or resolution that touches an expired entry removes it and reports the
    expiry. Resolution pops the entry before anything else happens, so a
    confirmation can be resolved at most once. None of the methods await, so
    no two coroutines can interleave inside them.
    Pending entries do not survive a process restart.
    """

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Optional[Callable[[], datetime]] = None):
        seconds = ttl_seconds if ttl_seconds is not None else get_settings().BIZUM_CONFIRMATION_TTL
        self.ttl = timedelta(seconds=seconds)
        self._clock = clock or utcnow
        self._pending: Dict[str, PendingConfirmation] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, confirmation_id: str) -> bool:
        return confirmation_id in self._pending

    @staticmethod
    def generate_confirmation_id() -> str:
        return f"conf_{uuid4().hex}"

    def create(self, transaction_data: TransactionData) -> PendingConfirmation:
        pending = PendingConfirmation(
            confirmation_id=self.generate_confirmation_id(),
            transaction_data=transaction_data,
            expires_at=self._clock() + self.ttl,
        )
        self._pending[pending.confirmation_id] = pending
        console.info(
            f"Pending confirmation '{pending.confirmation_id}' created for user "
            f"'{transaction_data.user_id}' (expires {pending.expires_at.isoformat()})."
        )
        return pending

    def get(self, confirmation_id: str) -> PendingConfirmation:
        """Looks an entry up without resolving it."""
        pending = self._pending.get(confirmation_id)
        if pending is None:
            raise ConfirmationNotFoundError(confirmation_id)
        if pending.is_expired(self._clock()):
            del self._pending[confirmation_id]
            raise ConfirmationExpiredError(confirmation_id)
        return pending

    def resolve(self, confirmation_id: str) -> PendingConfirmation:
        """Removes and returns the entry. The caller decides whether it is confirmed or cancelled."""
        pending = self._pending.pop(confirmation_id, None)
        if pending is None:
            raise ConfirmationNotFoundError(confirmation_id)
        if pending.is_expired(self._clock()):
            console.warning(f"Confirmation '{confirmation_id}' expired before it was resolved.")
            raise ConfirmationExpiredError(confirmation_id)
        return pending

    def restore(self, pending: PendingConfirmation):
        """Puts a resolved entry back, used when committing it failed."""
        if not pending.is_expired(self._clock()):
            self._pending.setdefault(pending.confirmation_id, pending)

    def pending_for(self, user_id: str) -> List[PendingConfirmation]:
        now = self._clock()
        return [
            pending for pending in self._pending.values()
            if pending.transaction_data.user_id == user_id and not pending.is_expired(now)
        ]

    def sweep_expired(self) -> int:
        now = self._clock()
        expired = [cid for cid, pending in self._pending.items() if pending.is_expired(now)]
        for confirmation_id in expired:
            del self._pending[confirmation_id]
        if expired:
            console.info(f"Swept {len(expired)} expired confirmation(s).")
        return len(expired)
