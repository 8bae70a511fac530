"""
Book models for the library catalog.

``available_copies`` is owned by the inventory ledger: callers can only set
``total_copies`` when a book is cataloged, and every copy starts on the shelf.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class BookCreate(BaseModel):
    """Input for adding a book to the catalog."""

    title: str = Field(..., min_length=1, max_length=500, examples=["The Great Gatsby"])
    author: str = Field(..., min_length=1, max_length=200, examples=["F. Scott Fitzgerald"])
    isbn: str = Field(
        ...,
        min_length=10,
        max_length=17,
        description="ISBN-10 or ISBN-13, hyphens allowed",
        examples=["9780743273565", "978-0-7432-7356-5"],
    )
    category: str = Field(..., min_length=1, max_length=100, examples=["Fiction"])
    rack_no: str = Field(..., min_length=1, max_length=20, examples=["A-12"])
    total_copies: int = Field(..., ge=1, le=10_000)

    @field_validator("isbn")
    @classmethod
    def normalize_isbn(cls, v: str) -> str:
        """Strip hyphens and spaces so the unique index sees one spelling per book."""
        cleaned = v.replace("-", "").replace(" ", "")
        if not (cleaned.isdigit() or (cleaned[:-1].isdigit() and cleaned[-1] in "Xx")):
            raise ValueError("ISBN must contain only digits (and a trailing X for ISBN-10)")
        if len(cleaned) not in (10, 13):
            raise ValueError("ISBN must have 10 or 13 digits")
        return cleaned.upper()

    @field_validator("title", "author", "category", "rack_no")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field cannot be blank")
        return v


class Book(BaseModel):
    """A cataloged book with its current copy counts."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    author: str
    isbn: str
    category: str
    rack_no: str
    total_copies: int = Field(..., ge=0)
    available_copies: int = Field(..., ge=0)
    created_at: datetime | None = None

    @model_validator(mode="after")
    def validate_copies(self) -> "Book":
        if self.available_copies > self.total_copies:
            raise ValueError("Available copies cannot exceed total copies")
        return self

    @property
    def is_available(self) -> bool:
        return self.available_copies > 0
