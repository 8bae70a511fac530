"""Book request models: a member asks for a book, staff approve or reject."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class RequestStatus(str, Enum):
    """Status of a book request. ``approved`` and ``rejected`` are terminal."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


class BookRequest(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    member_id: int
    status: RequestStatus
    request_date: datetime
    resolved_by: int | None = None
    resolved_at: datetime | None = None


class PendingRequest(BookRequest):
    """A request joined with the display fields staff need to decide on it."""

    title: str
    author: str
    member_name: str
    member_email: str
