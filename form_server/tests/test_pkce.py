"""Tests for PKCE, state generation and authorize URL building."""
import hashlib
import re
from base64 import urlsafe_b64encode
from urllib.parse import parse_qs, urlparse

from form_server.flow_store import AuthorizationSessionCache
from form_server.pkce import begin_login, build_authorize_url, generate_pkce, generate_state


def _s256(verifier: str) -> str:
    return urlsafe_b64encode(hashlib.sha256(verifier.encode("ascii")).digest()).rstrip(b"=").decode("ascii")


def test_generate_state_length():
    s = generate_state()
    assert len(s) >= 22  # >= 16 bytes of entropy
    assert re.match(r"^[A-Za-z0-9_-]+$", s)


def test_generate_state_unique():
    assert len({generate_state() for _ in range(100)}) == 100


def test_generate_pkce_returns_verifier_and_challenge():
    verifier, challenge = generate_pkce()
    assert 43 <= len(verifier) <= 128
    assert re.match(r"^[A-Za-z0-9_-]+$", verifier)
    assert re.match(r"^[A-Za-z0-9_-]+$", challenge)
    assert len(challenge) == 43  # base64url(SHA256 digest) no padding
    assert challenge == _s256(verifier)


def test_build_authorize_url_includes_required_params():
    url = build_authorize_url(
        authorize_url="https://airtable.test/oauth2/v1/authorize",
        client_id="client1",
        redirect_uri="https://forms.example/auth/callback",
        scope="data.records:read schema.bases:read",
        state="mystate",
        code_challenge="challenge123",
    )
    assert url.startswith("https://airtable.test/oauth2/v1/authorize?")
    params = parse_qs(urlparse(url).query)
    assert params["response_type"] == ["code"]
    assert params["client_id"] == ["client1"]
    assert params["redirect_uri"] == ["https://forms.example/auth/callback"]
    assert params["scope"] == ["data.records:read schema.bases:read"]
    assert params["state"] == ["mystate"]
    assert params["code_challenge"] == ["challenge123"]
    assert params["code_challenge_method"] == ["S256"]


def test_begin_login_stores_verifier_matching_challenge():
    cache = AuthorizationSessionCache()
    login = begin_login(
        cache,
        authorize_url="https://airtable.test/oauth2/v1/authorize",
        client_id="c",
        redirect_uri="https://c/cb",
        scope="data.records:read",
    )
    params = parse_qs(urlparse(login.authorization_url).query)
    assert params["state"] == [login.state]
    verifier = cache.take_and_remove(login.state)
    assert verifier is not None
    assert params["code_challenge"] == [_s256(verifier)]
