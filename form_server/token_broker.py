"""
Token broker: makes Airtable calls on behalf of a principal and keeps the
access/refresh pair fresh.

Refresh happens proactively when the stored expiry says the access token is
expired or about to be, and reactively on a 401 from the data API (then the
call is retried once). Refreshes are single-flight per principal: concurrent
callers that saw the same stale token wait for one refresh and reuse its
result. A rejected refresh clears the principal's tokens; every later call
fails with UpstreamAuthFailure until the user logs in again.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

import httpx
from sqlalchemy.orm import Session, sessionmaker

from form_server.errors import ResourceNotFound, UpstreamAuthFailure
from form_server.models import Principal
from form_server.provider import TokenGrant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_at: float | None = None

    def access_token_expired_or_soon(self, buffer_seconds: int = 60) -> bool:
        """
        True if expires_at is known and the access token is expired or within buffer_seconds of it.
        Unknown lifetime never triggers a proactive refresh; the 401 path covers it.
        """
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at - buffer_seconds

    def rotated(self, grant: TokenGrant) -> "TokenPair":
        """New pair after a refresh. Keeps the old refresh token if none was issued."""
        expires_at = time.time() + grant.expires_in if grant.expires_in else None
        return TokenPair(
            access_token=grant.access_token,
            refresh_token=grant.refresh_token or self.refresh_token,
            expires_at=expires_at,
        )


class TokenStore(Protocol):
    def load(self, principal_id: int) -> TokenPair: ...

    def save(self, principal_id: int, tokens: TokenPair) -> None: ...

    def clear(self, principal_id: int) -> None: ...


class SqlTokenStore:
    """TokenStore over the principals table. Opens its own short session per operation."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _get(self, db: Session, principal_id: int) -> Principal:
        principal = db.query(Principal).filter(Principal.id == principal_id).first()
        if principal is None:
            raise ResourceNotFound("Principal not found")
        return principal

    def load(self, principal_id: int) -> TokenPair:
        with self.session_factory() as db:
            principal = self._get(db, principal_id)
            if not principal.access_token or not principal.refresh_token:
                raise UpstreamAuthFailure()
            return TokenPair(
                access_token=principal.access_token,
                refresh_token=principal.refresh_token,
                expires_at=principal.access_expires_at,
            )

    def save(self, principal_id: int, tokens: TokenPair) -> None:
        with self.session_factory() as db:
            principal = self._get(db, principal_id)
            principal.access_token = tokens.access_token
            principal.refresh_token = tokens.refresh_token
            principal.access_expires_at = tokens.expires_at
            db.commit()

    def clear(self, principal_id: int) -> None:
        with self.session_factory() as db:
            principal = self._get(db, principal_id)
            principal.access_token = None
            principal.refresh_token = None
            principal.access_expires_at = None
            db.commit()


class TokenBroker:
    def __init__(
        self,
        store: TokenStore,
        refresh: Callable[[str], TokenGrant],
        *,
        expiry_buffer_seconds: int = 60,
    ):
        self.store = store
        self.refresh = refresh
        self.expiry_buffer_seconds = expiry_buffer_seconds
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, principal_id: int) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(principal_id)
            if lock is None:
                lock = self._locks[principal_id] = threading.Lock()
            return lock

    def access_token(self, principal_id: int) -> str:
        """Current access token, refreshed first if known to be expired or expiring."""
        tokens = self.store.load(principal_id)
        if tokens.access_token_expired_or_soon(self.expiry_buffer_seconds):
            logger.info("Access token for principal %s expired or expiring; refreshing", principal_id)
            return self._refresh(principal_id, stale_access_token=tokens.access_token)
        return tokens.access_token

    def call_authenticated(
        self,
        principal_id: int,
        request: Callable[[str], httpx.Response],
    ) -> httpx.Response:
        """
        Run request(access_token). On 401, refresh and retry exactly once.
        Any other response (including non-auth errors) is returned as-is.
        """
        access_token = self.access_token(principal_id)
        response = request(access_token)
        if response.status_code != 401:
            return response
        logger.info("Upstream returned 401 for principal %s; refreshing token", principal_id)
        new_access_token = self._refresh(principal_id, stale_access_token=access_token)
        return request(new_access_token)

    def _refresh(self, principal_id: int, *, stale_access_token: str) -> str:
        with self._lock_for(principal_id):
            # Reload under the lock: another caller may have refreshed (or failed) already
            current = self.store.load(principal_id)
            if current.access_token != stale_access_token:
                logger.debug("Refresh for principal %s already done by another caller", principal_id)
                return current.access_token
            try:
                grant = self.refresh(current.refresh_token)
            except UpstreamAuthFailure:
                logger.warning("Refresh rejected for principal %s; login required", principal_id)
                self.store.clear(principal_id)
                raise
            tokens = current.rotated(grant)
            self.store.save(principal_id, tokens)
            logger.info(
                "Token refreshed for principal %s (refresh token rotated=%s)",
                principal_id,
                grant.refresh_token is not None,
            )
            return tokens.access_token
