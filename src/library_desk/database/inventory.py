"""
Inventory ledger for the Library Desk backend.

The ledger is the only code allowed to change a book's copy counts. Both
count mutations are single conditional UPDATE statements, so the
check-and-change happens atomically inside the datastore:

- ``reserve_copy`` only decrements while ``available_copies > 0``
- ``release_copy`` only increments while ``available_copies < total_copies``

Two concurrent reservations of the last copy therefore cannot both succeed:
the second UPDATE sees the first one's write and matches zero rows. A read
followed by a write would lose that update.
"""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateISBN, IntegrityViolation, NotFound, OutOfStock
from ..models.book import Book, BookCreate
from .repository import BaseRepository
from .schema import Book as BookDB
from .session import safe_flush, safe_query

logger = logging.getLogger(__name__)


class InventoryLedger(BaseRepository[BookDB, Book]):
    """Owns book rows and their copy-count invariants."""

    @property
    def model_class(self) -> type[BookDB]:
        return BookDB

    @property
    def response_schema(self) -> type[Book]:
        return Book

    def add_book(self, data: BookCreate) -> Book:
        """
        Catalog a new book with every copy on the shelf.

        Raises:
            DuplicateISBN: If a book with the same ISBN already exists
        """
        existing = safe_query(
            self.session,
            lambda s: s.execute(select(BookDB.id).where(BookDB.isbn == data.isbn)).first(),
            "Failed to check ISBN",
        )
        if existing is not None:
            raise DuplicateISBN(f"Book with ISBN {data.isbn} already exists")

        book = BookDB(
            title=data.title,
            author=data.author,
            isbn=data.isbn,
            category=data.category,
            rack_no=data.rack_no,
            total_copies=data.total_copies,
            available_copies=data.total_copies,
        )
        self.session.add(book)
        try:
            safe_flush(self.session, "add book")
        except IntegrityError as e:
            raise DuplicateISBN(f"Book with ISBN {data.isbn} already exists") from e

        logger.info("Cataloged book %s (isbn=%s, copies=%d)", book.id, book.isbn, book.total_copies)
        return self._to_response_model(book)

    def reserve_copy(self, book_id: int) -> None:
        """
        Take one copy off the shelf.

        Raises:
            NotFound: If the book does not exist
            OutOfStock: If no copy is available
        """
        stmt = (
            update(BookDB)
            .where(BookDB.id == book_id, BookDB.available_copies > 0)
            .values(available_copies=BookDB.available_copies - 1)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to reserve copy")
        if result.rowcount == 1:
            logger.debug("Reserved a copy of book %s", book_id)
            return

        if not self.exists(book_id):
            raise NotFound(f"Book {book_id} not found")
        raise OutOfStock(f"No copies of book {book_id} available")

    def release_copy(self, book_id: int) -> None:
        """
        Put one copy back on the shelf.

        Raises:
            NotFound: If the book does not exist
            IntegrityViolation: If every copy is already on the shelf, which
                means a loan was returned twice upstream
        """
        stmt = (
            update(BookDB)
            .where(BookDB.id == book_id, BookDB.available_copies < BookDB.total_copies)
            .values(available_copies=BookDB.available_copies + 1)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to release copy")
        if result.rowcount == 1:
            logger.debug("Released a copy of book %s", book_id)
            return

        if not self.exists(book_id):
            raise NotFound(f"Book {book_id} not found")
        logger.error("Release of book %s would exceed its total copies", book_id)
        raise IntegrityViolation(f"Book {book_id} already has every copy available")

    def list_books(self, available_only: bool = False) -> list[Book]:
        query = select(BookDB).order_by(BookDB.title)
        if available_only:
            query = query.where(BookDB.available_copies > 0)
        rows = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to list books"
        )
        return [self._to_response_model(row) for row in rows]

    def availability_rate(self) -> int:
        """Percentage of all copies currently on the shelf (0 for an empty catalog)."""
        total, available = safe_query(
            self.session,
            lambda s: s.execute(
                select(
                    func.coalesce(func.sum(BookDB.total_copies), 0),
                    func.coalesce(func.sum(BookDB.available_copies), 0),
                )
            ).one(),
            "Failed to compute availability rate",
        )
        if not total:
            return 0
        return round(available * 100 / total)
