"""
Store for pending authorization attempts (state -> code_verifier), used between
/auth/start and /auth/callback. One instance per app, created in the lifespan.
Entries expire after a TTL and are single-use.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

# Airtable consent usually takes seconds; allow 10 min for the user
DEFAULT_FLOW_TTL = 600


@dataclass
class PendingFlow:
    code_verifier: str
    created_at: float


class AuthorizationSessionCache:
    def __init__(self, ttl_seconds: float = DEFAULT_FLOW_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: dict[str, PendingFlow] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def _expired(self, flow: PendingFlow, now: float) -> bool:
        return (now - flow.created_at) > self.ttl_seconds

    def put(self, state: str, code_verifier: str) -> None:
        now = self._clock()
        with self._lock:
            self._sweep_locked(now)
            self._pending[state] = PendingFlow(code_verifier=code_verifier, created_at=now)

    def take_and_remove(self, state: str) -> str | None:
        """
        Pop the verifier for state. Returns None if the state was never issued,
        was already consumed, or has expired. At most one caller gets the verifier.
        """
        now = self._clock()
        with self._lock:
            flow = self._pending.pop(state, None)
        if flow is None:
            return None
        if self._expired(flow, now):
            logger.info("Pending login expired before callback")
            return None
        return flow.code_verifier

    def sweep_expired(self) -> int:
        now = self._clock()
        with self._lock:
            return self._sweep_locked(now)

    def _sweep_locked(self, now: float) -> int:
        expired = [s for s, f in self._pending.items() if self._expired(f, now)]
        for s in expired:
            del self._pending[s]
        if expired:
            logger.debug("Swept %d expired pending logins", len(expired))
        return len(expired)
