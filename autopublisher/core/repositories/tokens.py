"""
Storage for connected YouTube accounts.

One record per normalized email. The pipeline publishes to the most recently
updated account, so ordering by `updated_at` is part of the contract.

Both repositories are blocking; async callers go through asyncio.to_thread.
"""

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from google.cloud import firestore

from autopublisher import config
from autopublisher.core.repositories.exceptions import TokenRepositoryError, ValidationError
from autopublisher.core.repositories.models import ConnectedUser
from autopublisher.core.utils import normalize_email

logger = logging.getLogger(__name__)


class TokenRepository(ABC):
    @abstractmethod
    def save(self, email: str, tokens: Dict[str, Any]) -> ConnectedUser:
        """Upsert tokens for email and mark the record as most recently updated."""

    @abstractmethod
    def load(self, email: str) -> Optional[ConnectedUser]:
        """Return the record for email, or None."""

    @abstractmethod
    def delete(self, email: str) -> None:
        """Remove the record for email. Missing records are ignored."""

    @abstractmethod
    def most_recent(self) -> Optional[ConnectedUser]:
        """Return the most recently updated record, or None."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored records."""


def _validated_email(email: str) -> str:
    if not email or not isinstance(email, str):
        raise ValidationError("Invalid email")
    email = normalize_email(email)
    if "@" not in email or len(email) > 320:
        raise ValidationError(f"Invalid email: {email}")
    return email


class FirestoreTokenRepository(TokenRepository):
    """
    Tokens in Firestore: {TOKEN_COLLECTION}/{email}.

    Document fields: email, tokens, created_at, updated_at.
    """

    def __init__(self, db: Any = None, collection: Optional[str] = None):
        if db is None:
            from autopublisher.core.firebase_client import get_firestore_client
            db = get_firestore_client()
        self.db = db
        self.collection = self.db.collection(collection or config.TOKEN_COLLECTION)

    def save(self, email: str, tokens: Dict[str, Any]) -> ConnectedUser:
        email = _validated_email(email)
        now = datetime.now(timezone.utc)
        doc_ref = self.collection.document(email)
        try:
            snap = doc_ref.get()
            if snap.exists:
                # update() replaces the tokens map instead of merging stale keys into it
                doc_ref.update({"tokens": tokens, "updated_at": now})
                user = ConnectedUser(
                    email=email,
                    tokens=tokens,
                    created_at=(snap.to_dict() or {}).get("created_at"),
                    updated_at=now,
                )
            else:
                user = ConnectedUser(email=email, tokens=tokens, created_at=now, updated_at=now)
                doc_ref.set(user.to_dict())
        except Exception as e:
            logger.error("Failed to save tokens for %s: %s", email, e, exc_info=True)
            raise TokenRepositoryError(f"Failed to save tokens: {e}") from e

        logger.info("Tokens saved for: %s", email)
        return user

    def load(self, email: str) -> Optional[ConnectedUser]:
        email = _validated_email(email)
        try:
            snap = self.collection.document(email).get()
        except Exception as e:
            logger.error("Failed to load tokens for %s: %s", email, e, exc_info=True)
            raise TokenRepositoryError(f"Failed to load tokens: {e}") from e
        if not snap.exists:
            return None
        return ConnectedUser.from_dict(snap.to_dict() or {})

    def delete(self, email: str) -> None:
        email = _validated_email(email)
        try:
            self.collection.document(email).delete()
        except Exception as e:
            logger.error("Failed to delete tokens for %s: %s", email, e, exc_info=True)
            raise TokenRepositoryError(f"Failed to delete tokens: {e}") from e
        logger.info("Tokens deleted for: %s", email)

    def most_recent(self) -> Optional[ConnectedUser]:
        try:
            docs = list(
                self.collection.order_by("updated_at", direction=firestore.Query.DESCENDING)
                .limit(1)
                .stream()
            )
        except Exception as e:
            logger.error("Failed to query connected users: %s", e, exc_info=True)
            raise TokenRepositoryError(f"Failed to query connected users: {e}") from e
        if not docs:
            return None
        return ConnectedUser.from_dict(docs[0].to_dict() or {})

    def count(self) -> int:
        try:
            result = self.collection.count().get()
        except Exception as e:
            logger.error("Failed to count connected users: %s", e, exc_info=True)
            raise TokenRepositoryError(f"Failed to count connected users: {e}") from e
        return int(result[0][0].value)


class InMemoryTokenRepository(TokenRepository):
    """Process-local repository for development and tests."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, Tuple[int, ConnectedUser]] = {}
        # Breaks ties between saves within the same clock tick
        self._sequence = itertools.count()

    def save(self, email: str, tokens: Dict[str, Any]) -> ConnectedUser:
        email = _validated_email(email)
        now = datetime.now(timezone.utc)
        with self._lock:
            existing = self._records.get(email)
            created_at = existing[1].created_at if existing else now
            user = ConnectedUser(email=email, tokens=dict(tokens), created_at=created_at, updated_at=now)
            self._records[email] = (next(self._sequence), user)
        logger.info("Tokens saved for: %s", email)
        return user.model_copy(deep=True)

    def load(self, email: str) -> Optional[ConnectedUser]:
        email = _validated_email(email)
        with self._lock:
            entry = self._records.get(email)
        return entry[1].model_copy(deep=True) if entry else None

    def delete(self, email: str) -> None:
        email = _validated_email(email)
        with self._lock:
            self._records.pop(email, None)

    def most_recent(self) -> Optional[ConnectedUser]:
        with self._lock:
            entries: List[Tuple[int, ConnectedUser]] = list(self._records.values())
        if not entries:
            return None
        _, user = max(entries, key=lambda entry: entry[0])
        return user.model_copy(deep=True)

    def count(self) -> int:
        with self._lock:
            return len(self._records)


_repository: Optional[TokenRepository] = None


def get_token_repository() -> TokenRepository:
    global _repository
    if _repository is None:
        if config.STATE_BACKEND == "firestore":
            _repository = FirestoreTokenRepository()
        else:
            _repository = InMemoryTokenRepository()
        logger.info("Using %s for YouTube tokens", type(_repository).__name__)
    return _repository
