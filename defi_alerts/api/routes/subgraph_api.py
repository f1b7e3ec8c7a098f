"""Cached Aave subgraph proxy.

POST /api/v1/aave/subgraph  {chain_id, query, variables}
    -> {data, metadata: {from_cache, cache_key, timestamp}}

Limited per client. Identical queries are served from cache for
``subgraph_cache_ttl_seconds``.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from defi_alerts.api.deps import get_services
from defi_alerts.api.schemas.alert_schemas import SubgraphQueryRequest
from defi_alerts.api.services import ServiceContainer
from defi_alerts.cache.rate_limiter import client_identifier

router = APIRouter(prefix="/aave", tags=["Subgraph"])


@router.post("/subgraph")
async def query_subgraph(
    body: SubgraphQueryRequest,
    request: Request,
    services: ServiceContainer = Depends(get_services),
):
    result = await services.subgraph.execute(
        body.chain_id, body.query, body.variables, client_identifier(request)
    )
    return result.to_dict()
