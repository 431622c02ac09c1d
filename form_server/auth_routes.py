"""
Login with Airtable (OAuth2 authorization code + PKCE) and the principal profile.
GET /auth/start, GET /auth/callback, GET /principals/{id}.
"""
import logging
import time
from urllib.parse import urlencode

import httpx

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from form_server import config
from form_server.database import get_db
from form_server.errors import InvalidAttempt, ResourceNotFound, UpstreamAuthFailure, UpstreamTransientFailure
from form_server.flow_store import AuthorizationSessionCache
from form_server.models import Principal
from form_server.pkce import begin_login
from form_server.provider import AirtableClient, TokenGrant, call_with_retry
from form_server.services import get_flow_cache, get_provider

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/auth/start")
def auth_start(cache: AuthorizationSessionCache = Depends(get_flow_cache)):
    """Generate state + PKCE pair, remember the verifier, redirect to Airtable /authorize."""
    login = begin_login(
        cache,
        authorize_url=config.AUTHORIZE_URL,
        client_id=config.CLIENT_ID,
        redirect_uri=config.REDIRECT_URI,
        scope=config.DEFAULT_SCOPE,
    )
    return RedirectResponse(url=login.authorization_url, status_code=302)


def upsert_principal(db: Session, external_id: str, email: str | None, grant: TokenGrant) -> Principal:
    principal = db.query(Principal).filter(Principal.external_id == external_id).first()
    if principal is None:
        principal = Principal(external_id=external_id)
        db.add(principal)
    principal.email = email
    principal.access_token = grant.access_token
    if grant.refresh_token:
        principal.refresh_token = grant.refresh_token
    principal.access_expires_at = time.time() + grant.expires_in if grant.expires_in else None
    db.commit()
    db.refresh(principal)
    return principal


def _authentication_failed() -> HTTPException:
    return HTTPException(
        status_code=500,
        detail={"error": "server_error", "error_description": "An error occurred during authentication."},
    )


def _identity_of(r: httpx.Response) -> dict | None:
    """whoami body if it is a JSON object with an id; None otherwise."""
    if r.status_code != 200:
        return None
    try:
        identity = r.json()
    except ValueError:
        return None
    if not isinstance(identity, dict) or not identity.get("id"):
        return None
    return identity


@router.get("/auth/callback")
def auth_callback(
    state: str | None = None,
    code: str | None = None,
    error: str | None = None,
    cache: AuthorizationSessionCache = Depends(get_flow_cache),
    provider: AirtableClient = Depends(get_provider),
    db: Session = Depends(get_db),
):
    """
    Exchange code + stored verifier for tokens, look up the Airtable identity, upsert the
    principal and redirect to the front end with ?principalId=.
    The state is consumed before anything else, so a failed callback cannot be replayed.
    """
    code_verifier = cache.take_and_remove(state) if state else None
    if code_verifier is None:
        raise InvalidAttempt()
    if error:
        logger.info("Authorization denied at provider: %s", error)
        raise InvalidAttempt("Authorization was not granted. Please try logging in again.")
    if not code:
        raise InvalidAttempt("Missing code parameter. Please try logging in again.")

    try:
        grant = call_with_retry(lambda: provider.exchange_code(code, code_verifier))
        if not grant.refresh_token:
            # Without a refresh token the principal would be logged out at the first expiry
            logger.warning("Token exchange returned no refresh_token; rejecting login")
            raise _authentication_failed()
        r = call_with_retry(lambda: provider.whoami(grant.access_token))
    except (UpstreamAuthFailure, UpstreamTransientFailure):
        raise _authentication_failed()
    identity = _identity_of(r)
    if identity is None:
        logger.warning("whoami failed after token exchange: status=%s", r.status_code)
        raise _authentication_failed()

    principal = upsert_principal(db, identity["id"], identity.get("email"), grant)
    logger.info("Principal %s logged in (external_id=%s)", principal.id, principal.external_id)
    query = urlencode({"principalId": principal.id})
    return RedirectResponse(url=f"{config.FRONTEND_URL}?{query}", status_code=302)


@router.get("/principals/{principal_id}")
def get_principal(principal_id: int, db: Session = Depends(get_db)):
    principal = db.query(Principal).filter(Principal.id == principal_id).first()
    if principal is None:
        raise ResourceNotFound("Principal not found")
    return principal.to_profile()
