"""Authentication and authorization for desk operations."""

from .authenticator import Authenticator, hash_password, verify_password
from .policy import POLICY, Operation, Rule, authorize, is_allowed

__all__ = [
    "POLICY",
    "Authenticator",
    "Operation",
    "Rule",
    "authorize",
    "hash_password",
    "is_allowed",
    "verify_password",
]
