from __future__ import annotations

import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from storefront.config import Config
from storefront.exceptions import InvalidCredentials
from storefront.observability import increment_counter


class TokenStore(ABC):
    """Where admin session tokens live between requests."""

    @abstractmethod
    def issue(self, username: str) -> str:
        ...

    @abstractmethod
    def validate(self, token: Optional[str]) -> Optional[str]:
        """Return the username behind a live token, or None."""

    @abstractmethod
    def revoke(self, token: Optional[str]) -> None:
        ...


class InMemoryTokenStore(TokenStore):
    """
    Process-local token store with a fixed time-to-live.

    A token presented after expiry is dropped on lookup, and every ``issue``
    sweeps the remaining expired entries, so abandoned sessions do not pile
    up. Tokens do not survive a restart and are not shared between worker
    processes.
    """

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._tokens: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def issue(self, username: str) -> str:
        token = secrets.token_hex(32)
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._tokens[token] = (username, now + self.ttl_seconds)
        return token

    def _purge_expired(self, now: float) -> None:
        # Caller holds the lock
        expired = [token for token, (_, expires_at) in self._tokens.items() if now >= expires_at]
        for token in expired:
            del self._tokens[token]

    def validate(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return None
        with self._lock:
            entry = self._tokens.get(token)
            if entry is None:
                return None
            username, expires_at = entry
            if self._clock() >= expires_at:
                del self._tokens[token]
                return None
            return username

    def revoke(self, token: Optional[str]) -> None:
        if not token:
            return
        with self._lock:
            self._tokens.pop(token, None)

    def __len__(self) -> int:
        return len(self._tokens)


class AdminAuthService:
    """Checks the single configured admin account and hands out bearer tokens."""

    def __init__(self, token_store: TokenStore, config: type[Config] = Config) -> None:
        self.token_store = token_store
        self.username = config.ADMIN_USERNAME
        # Only the hash is kept on the instance
        self._password_hash = generate_password_hash(config.ADMIN_PASSWORD)
        self.logger = logging.getLogger(__name__)

    def login(self, username: Optional[str], password: Optional[str]) -> str:
        if (
            not username
            or not password
            or not secrets.compare_digest(username, self.username)
            or not check_password_hash(self._password_hash, password)
        ):
            increment_counter("admin_logins_total", labels={"result": "rejected"})
            self.logger.warning("Rejected admin login", extra={"username": username})
            raise InvalidCredentials()
        increment_counter("admin_logins_total", labels={"result": "accepted"})
        self.logger.info("Admin logged in", extra={"username": username})
        return self.token_store.issue(username)

    def authenticate(self, token: Optional[str]) -> Optional[str]:
        return self.token_store.validate(token)

    def logout(self, token: Optional[str]) -> None:
        self.token_store.revoke(token)


default_token_store = InMemoryTokenStore(ttl_seconds=Config.ADMIN_TOKEN_TTL_SECONDS)


__all__ = ["TokenStore", "InMemoryTokenStore", "AdminAuthService", "default_token_store"]
