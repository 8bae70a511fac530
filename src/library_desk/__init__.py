"""
Library Desk Package.

A library management backend served over MCP: members request and borrow
books, staff approve requests and run circulation, fines are settled by
payment.

Key Components:
- models: Pydantic models for data validation and serialization
- database: SQLAlchemy schema, sessions and the circulation components
- auth: Password authentication, bearer tokens and the access policy
- desk: The transactional facade every operation goes through
- tools: MCP tools wrapping the desk
- config: Configuration management with Pydantic v2
"""

__version__ = "0.1.0"

from .desk import LibraryDesk

__all__ = [
    "LibraryDesk",
    "__version__",
]
