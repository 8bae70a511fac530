from datetime import datetime

from pydantic import BaseModel, ConfigDict


class Notification(BaseModel):
    """A message for one user, or for everyone when ``user_id`` is None."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int | None = None
    message: str
    type: str
    related_id: int | None = None
    related_type: str | None = None
    is_read: bool = False
    created_at: datetime
