"""
Airtable client: OAuth token endpoint (code exchange, refresh_token grant) and the
data API calls the form server needs. Data calls return the raw httpx.Response so the
token broker can see a 401 and refresh; token calls return a TokenGrant or raise.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import httpx

from form_server.errors import UpstreamAuthFailure, UpstreamRequestFailed, UpstreamTransientFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Request timeout and rate limit say nothing about the grant itself; never treat them as a rejection
TRANSIENT_TOKEN_STATUSES = {408, 429}


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None


class AirtableClient:
    def __init__(
        self,
        http: httpx.Client,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        token_url: str,
        api_url: str,
        timeout: float = 10.0,
    ):
        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.token_url = token_url
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    # --- token endpoint ---

    def exchange_code(self, code: str, code_verifier: str) -> TokenGrant:
        return self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "code_verifier": code_verifier,
            }
        )

    def refresh_access_token(self, refresh_token: str) -> TokenGrant:
        return self._token_request({"grant_type": "refresh_token", "refresh_token": refresh_token})

    def _token_request(self, data: dict[str, str]) -> TokenGrant:
        grant_type = data["grant_type"]
        r = self._send(
            "POST",
            self.token_url,
            data=data,
            auth=(self.client_id, self.client_secret),
            headers={"Accept": "application/json"},
        )
        if r.status_code in TRANSIENT_TOKEN_STATUSES:
            logger.warning("%s grant deferred by provider: status=%s", grant_type, r.status_code)
            raise UpstreamTransientFailure()
        if r.status_code != 200:
            # Body may echo client or token details; keep it in server logs only
            logger.warning("%s grant rejected: status=%s body=%s", grant_type, r.status_code, r.text[:500])
            raise UpstreamAuthFailure()
        try:
            payload = r.json()
        except ValueError:
            logger.warning("%s grant returned non-JSON body", grant_type)
            raise UpstreamTransientFailure()
        access_token = payload.get("access_token")
        if not access_token:
            logger.warning("%s grant response has no access_token", grant_type)
            raise UpstreamAuthFailure()
        expires_in = payload.get("expires_in")
        return TokenGrant(
            access_token=access_token,
            refresh_token=payload.get("refresh_token") or None,
            expires_in=int(expires_in) if expires_in is not None else None,
        )

    # --- data API (Bearer access token) ---

    def whoami(self, access_token: str) -> httpx.Response:
        return self._api("GET", "/meta/whoami", access_token)

    def list_bases(self, access_token: str) -> httpx.Response:
        return self._api("GET", "/meta/bases", access_token)

    def list_tables(self, access_token: str, base_id: str) -> httpx.Response:
        return self._api("GET", f"/meta/bases/{base_id}/tables", access_token)

    def create_record(self, access_token: str, base_id: str, table_id: str, fields: dict[str, Any]) -> httpx.Response:
        return self._api("POST", f"/{base_id}/{table_id}", access_token, json={"fields": fields})

    def list_records(
        self, access_token: str, base_id: str, table_id: str, offset: str | None = None
    ) -> httpx.Response:
        params = {"offset": offset} if offset else None
        return self._api("GET", f"/{base_id}/{table_id}", access_token, params=params)

    def _api(self, method: str, path: str, access_token: str, **kwargs) -> httpx.Response:
        return self._send(
            method,
            f"{self.api_url}{path}",
            headers={"Authorization": f"Bearer {access_token}"},
            **kwargs,
        )

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            r = self.http.request(method, url, **kwargs)
        except httpx.TransportError as e:
            logger.warning("Upstream %s %s failed: %s", method, url, type(e).__name__)
            raise UpstreamTransientFailure() from e
        if r.status_code >= 500:
            logger.warning("Upstream %s %s returned %s: %s", method, url, r.status_code, r.text[:500])
            raise UpstreamTransientFailure()
        return r


def call_with_retry(fn: Callable[[], T]) -> T:
    """Run fn; on a transient upstream failure, try exactly once more."""
    try:
        return fn()
    except UpstreamTransientFailure:
        logger.info("Transient upstream failure; retrying once")
        return fn()


def upstream_json(r: httpx.Response, action: str) -> Any:
    """Body of a successful data API response; otherwise log it and raise a generic error."""
    if r.is_success:
        return r.json()
    logger.warning("Failed to %s: status=%s body=%s", action, r.status_code, r.text[:500])
    if r.status_code == 401:
        raise UpstreamAuthFailure()
    raise UpstreamRequestFailed(f"Failed to {action}")
