# This module handles the persistence of per-user conversation sessions using Redis.
# Version: 0.2.0

import random
import string
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from redis.exceptions import RedisError

from ai_agent.core.config import get_settings
from ai_agent.models.domain import HistoryEntry, Session, SessionSummary, utcnow
from ai_agent.services.user_store import UserStore
from ai_agent.utils.logger import console


class SessionManager:
    """
    Manages the lifecycle of user sessions, persisting each one as a JSON
    document in Redis. It is the only writer of session records.
    """

    def __init__(self, store: Optional[UserStore] = None, history_limit: Optional[int] = None):
        self._store = store if store is not None else UserStore("session")
        self.history_limit = history_limit if history_limit is not None else get_settings().SESSION_HISTORY_LIMIT

    @staticmethod
    def generate_user_id() -> str:
        """Generates a new opaque user identity, e.g. 'user_12345678_ab12cd'."""
        timestamp = str(int(time.time() * 1000))[-8:]
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
        return f"user_{timestamp}_{suffix}"

    async def _load(self, user_id: str) -> Optional[Session]:
        try:
            data = await self._store.load(user_id)
        except RedisError:
            console.exception(f"Could not read session '{user_id}' from Redis. Starting from an empty one.")
            return None
        if data is None:
            return None
        try:
            return Session.model_validate(data)
        except ValidationError:
            console.exception(f"Stored session '{user_id}' is corrupted. Starting from an empty one.")
            return None

    async def _save(self, session: Session):
        try:
            await self._store.save(session.user_id, session.model_dump(mode="json"))
            console.debug(f"Session '{session.user_id}' saved to Redis.")
        except RedisError:
            console.exception(f"Failed to save session '{session.user_id}' to Redis.")

    async def create_session(self, user_id: Optional[str] = None) -> str:
        actual_user_id = user_id or self.generate_user_id()
        async with self._store.locked(actual_user_id):
            await self._save(Session(user_id=actual_user_id))
        console.info(f"New session created: {actual_user_id}")
        return actual_user_id

    async def get_session(self, user_id: str) -> Session:
        """Returns the stored session, creating it on first access."""
        session = await self._load(user_id)
        if session is not None:
            return session
        async with self._store.locked(user_id):
            return await self._get_or_create(user_id)

    async def _get_or_create(self, user_id: str) -> Session:
        # Callers hold the user's lock, so a concurrent writer cannot be overwritten.
        session = await self._load(user_id)
        if session is None:
            console.info(f"Session '{user_id}' not found. Creating a new one.")
            session = Session(user_id=user_id)
            await self._save(session)
        return session

    async def get_history(self, user_id: str) -> List[Dict[str, str]]:
        """Returns the history as plain {role, content} messages ready for the model."""
        session = await self.get_session(user_id)
        return [{"role": entry.role, "content": entry.content} for entry in session.history]

    async def append_exchange(self, user_id: str, user_text: str, assistant_text: str):
        async with self._store.locked(user_id):
            session = await self._get_or_create(user_id)
            now = utcnow()
            session.history.append(HistoryEntry(role="user", content=user_text, timestamp=now))
            session.history.append(HistoryEntry(role="assistant", content=assistant_text or "", timestamp=now))
            if len(session.history) > self.history_limit:
                session.history = session.history[-self.history_limit:]
            session.last_activity = now
            await self._save(session)
        console.debug(f"Conversation history updated for '{user_id}' ({len(session.history)} entries).")

    async def clear_history(self, user_id: str):
        async with self._store.locked(user_id):
            session = await self._get_or_create(user_id)
            session.history = []
            session.last_activity = utcnow()
            await self._save(session)
        console.info(f"Conversation history cleared for '{user_id}'.")

    async def delete_session(self, user_id: str) -> bool:
        try:
            async with self._store.locked(user_id):
                removed = await self._store.delete(user_id)
        except RedisError:
            console.exception(f"Error deleting session '{user_id}'.")
            return False
        console.info(f"Session '{user_id}' deleted.")
        return removed

    async def set_metadata(self, user_id: str, key: str, value: Any):
        async with self._store.locked(user_id):
            session = await self._get_or_create(user_id)
            session.metadata[key] = value
            session.last_activity = utcnow()
            await self._save(session)

    async def get_metadata(self, user_id: str, key: str) -> Any:
        session = await self.get_session(user_id)
        return session.metadata.get(key)

    async def list_all(self) -> List[SessionSummary]:
        """Summaries of every stored session, most recent activity first."""
        summaries = []
        for user_id in await self._store.user_ids():
            session = await self._load(user_id)
            if session is None:
                continue
            summaries.append(SessionSummary(
                user_id=session.user_id,
                last_activity=session.last_activity,
                message_count=len(session.history),
                created_at=session.created_at,
            ))
        return sorted(summaries, key=lambda summary: summary.last_activity, reverse=True)

    async def list_active(self, since: Union[datetime, timedelta] = timedelta(hours=1)) -> List[SessionSummary]:
        """Sessions whose last activity is newer than 'since' (absolute, or relative to now)."""
        threshold = utcnow() - since if isinstance(since, timedelta) else since
        return [summary for summary in await self.list_all() if summary.last_activity > threshold]
