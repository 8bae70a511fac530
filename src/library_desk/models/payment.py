"""Payment models. A payment settles the fine of exactly one loan."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    ONLINE = "online"


class PaymentCreate(BaseModel):
    member_id: int
    issued_book_id: int
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    payment_method: PaymentMethod = PaymentMethod.CASH
    description: str | None = Field(default=None, max_length=500)


class Payment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: Decimal
    member_id: int
    issued_book_id: int
    processed_by: int | None = None
    payment_date: datetime
    description: str | None = None
    payment_method: PaymentMethod


class PaymentDetail(Payment):
    member_name: str
    processed_by_name: str | None = None
