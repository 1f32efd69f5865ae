# The module defines the per-user records kept in the durable store:
# sessions, contacts, Bizum transactions and pending confirmations.
# Version: 0.1.0

from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HistoryEntry(BaseModel):
    """
    One turn stored in a session history.
    Attributes:
        role (str): Either 'user' or 'assistant'.
        content (str): The text of the turn.
        timestamp (datetime): When the turn was recorded.
    """
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class Session(BaseModel):
    """
    Represents the durable conversation context of one end user.
    The history is bounded by the session manager, oldest entries first out.
    """
    user_id: str
    history: List[HistoryEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SessionSummary(BaseModel):
    user_id: str
    last_activity: datetime
    message_count: int
    created_at: Optional[datetime] = None


class Contact(BaseModel):
    """An entry of the per-user contacts directory. Phones are stored as +34XXXXXXXXX."""
    id: str
    name: str
    phone: str
    email: str = ""
    alias: str = ""
    favorite: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class TransactionData(BaseModel):
    """Immutable snapshot of a proposed Bizum, taken before the user confirms it."""
    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    type: Literal["send", "request"]
    amount: float
    recipient: str
    recipient_phone: str
    from_contact: bool = False
    concept: str = "Bizum"
    created_at: datetime = Field(default_factory=utcnow)


class Transaction(TransactionData):
    """A Bizum that the user confirmed. Only these are ever persisted."""
    status: Literal["completed"] = "completed"
    signature: str
    confirmed_at: datetime = Field(default_factory=utcnow)


class PendingConfirmation(BaseModel):
    confirmation_id: str
    transaction_data: TransactionData
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at
