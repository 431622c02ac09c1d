"""
Airtable schema browsing for the form builder: a principal's bases and a base's tables.
"""
from fastapi import APIRouter, Depends

from form_server.provider import AirtableClient, call_with_retry, upstream_json
from form_server.services import get_provider, get_token_broker
from form_server.token_broker import TokenBroker

router = APIRouter()


@router.get("/principals/{principal_id}/bases")
def list_bases(
    principal_id: int,
    broker: TokenBroker = Depends(get_token_broker),
    provider: AirtableClient = Depends(get_provider),
):
    r = call_with_retry(lambda: broker.call_authenticated(principal_id, provider.list_bases))
    return upstream_json(r, "fetch Airtable bases").get("bases", [])


@router.get("/principals/{principal_id}/bases/{base_id}/tables")
def list_tables(
    principal_id: int,
    base_id: str,
    broker: TokenBroker = Depends(get_token_broker),
    provider: AirtableClient = Depends(get_provider),
):
    """Tables with their fields; the builder turns supported fields into questions."""
    r = call_with_retry(
        lambda: broker.call_authenticated(principal_id, lambda token: provider.list_tables(token, base_id))
    )
    return upstream_json(r, "fetch Airtable tables").get("tables", [])
