"""
PKCE (RFC 7636) and authorize-URL helpers for starting an Airtable login.
S256 only.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from dataclasses import dataclass
from urllib.parse import urlencode

from form_server.flow_store import AuthorizationSessionCache


@dataclass(frozen=True)
class LoginStart:
    state: str
    authorization_url: str


def generate_state() -> str:
    """Opaque value for CSRF protection; returned in callback."""
    return secrets.token_urlsafe(32)


def generate_pkce() -> tuple[str, str]:
    """
    Generate code_verifier and code_challenge (S256).
    Returns (code_verifier, code_challenge). Verifier is 43 chars (256 bits entropy).
    """
    code_verifier = secrets.token_urlsafe(32)
    return code_verifier, code_challenge_for(code_verifier)


def code_challenge_for(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def build_authorize_url(
    *,
    authorize_url: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
    state: str,
    code_challenge: str,
) -> str:
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": scope,
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    return f"{authorize_url}?{urlencode(params)}"


def begin_login(
    cache: AuthorizationSessionCache,
    *,
    authorize_url: str,
    client_id: str,
    redirect_uri: str,
    scope: str,
) -> LoginStart:
    """Create state + PKCE pair, remember the verifier under state, and build the redirect URL."""
    state = generate_state()
    code_verifier, code_challenge = generate_pkce()
    cache.put(state, code_verifier)
    url = build_authorize_url(
        authorize_url=authorize_url,
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        state=state,
        code_challenge=code_challenge,
    )
    return LoginStart(state=state, authorization_url=url)
