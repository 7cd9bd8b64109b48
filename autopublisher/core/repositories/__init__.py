"""
Repository layer for connected YouTube accounts.
"""

from autopublisher.core.repositories.exceptions import RepositoryError, TokenRepositoryError
from autopublisher.core.repositories.models import ConnectedUser
from autopublisher.core.repositories.tokens import (
    FirestoreTokenRepository,
    InMemoryTokenRepository,
    TokenRepository,
    get_token_repository,
)

__all__ = [
    "ConnectedUser",
    "FirestoreTokenRepository",
    "InMemoryTokenRepository",
    "RepositoryError",
    "TokenRepository",
    "TokenRepositoryError",
    "get_token_repository",
]
