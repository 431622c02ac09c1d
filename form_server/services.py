"""
Per-app service objects (session cache, Airtable client, token broker) and the
FastAPI dependencies that hand them to routes. Built once in the lifespan.
"""
import httpx
from fastapi import FastAPI, Request

from form_server import config
from form_server.database import SessionLocal
from form_server.flow_store import AuthorizationSessionCache
from form_server.provider import AirtableClient
from form_server.token_broker import SqlTokenStore, TokenBroker


def build_provider(http: httpx.Client) -> AirtableClient:
    return AirtableClient(
        http,
        client_id=config.CLIENT_ID,
        client_secret=config.CLIENT_SECRET,
        redirect_uri=config.REDIRECT_URI,
        token_url=config.TOKEN_URL,
        api_url=config.API_URL,
        timeout=config.UPSTREAM_TIMEOUT_SECONDS,
    )


def configure_services(app: FastAPI, provider: AirtableClient) -> None:
    app.state.flow_cache = AuthorizationSessionCache(ttl_seconds=config.FLOW_TTL_SECONDS)
    app.state.provider = provider
    app.state.token_broker = TokenBroker(
        SqlTokenStore(SessionLocal),
        provider.refresh_access_token,
        expiry_buffer_seconds=config.TOKEN_EXPIRY_BUFFER_SECONDS,
    )


def get_flow_cache(request: Request) -> AuthorizationSessionCache:
    return request.app.state.flow_cache


def get_provider(request: Request) -> AirtableClient:
    return request.app.state.provider


def get_token_broker(request: Request) -> TokenBroker:
    return request.app.state.token_broker
