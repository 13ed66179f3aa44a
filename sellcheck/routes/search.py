"""
Search API endpoints.

- /api/search: market signal for a query (+ insights, speed range)
- /api/price-speed: days-to-sell estimate for a candidate list price
- /api/admin/flush-cache: drop every cached signal (Bearer ADMIN_SECRET)
"""

import hmac
import logging
import math
from typing import Optional

from fastapi import APIRouter, Query, Request

from sellcheck.services.app_state import get_app_state_from_request
from sellcheck.services.exceptions import (
    ConfigurationError,
    InvalidQueryError,
    UnauthorizedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["search"])

MIN_QUERY_LENGTH = 2


def validate_query(q: Optional[str]) -> str:
    if not q or not q.strip():
        raise InvalidQueryError('Query parameter "q" is required')
    if len(q.strip()) < MIN_QUERY_LENGTH:
        raise InvalidQueryError(f"Query must be at least {MIN_QUERY_LENGTH} characters")
    return q


@router.get("/search")
async def search(
    request: Request,
    q: Optional[str] = None,
    condition: Optional[str] = None,
    insights: bool = False,
):
    """GET /api/search?q=Lululemon+Define+Jacket&condition=USED&insights=true"""
    query = validate_query(q)
    state = get_app_state_from_request(request)

    outcome = await state.orchestrator.get_signal(query, condition=condition, with_insights=insights)
    logger.info(f"[SEARCH] '{outcome.signal.query}' cached={outcome.cached} verdict={outcome.signal.verdict.value}")
    return outcome.to_dict()


@router.get("/price-speed")
async def price_speed(
    request: Request,
    q: Optional[str] = None,
    price: float = Query(...),
    condition: Optional[str] = None,
):
    """GET /api/price-speed?q=nike+dunk+low&price=120"""
    query = validate_query(q)
    if not math.isfinite(price) or price <= 0:
        raise ValidationError("Price must be a positive number", field="price")

    state = get_app_state_from_request(request)
    outcome = await state.orchestrator.get_signal(query, condition=condition)
    speed = state.orchestrator.estimate_speed(outcome.signal, price)
    speed["query"] = outcome.signal.query
    speed["dataSource"] = outcome.signal.data_source.value
    return speed


@router.post("/admin/flush-cache")
async def flush_cache(request: Request):
    state = get_app_state_from_request(request)
    if not state.admin_secret:
        raise ConfigurationError("Admin endpoints are disabled", config_key="ADMIN_SECRET")

    auth_header = request.headers.get("authorization", "")
    if not hmac.compare_digest(auth_header.encode(), f"Bearer {state.admin_secret}".encode()):
        raise UnauthorizedError()

    deleted = state.cache.flush() if state.cache is not None else 0
    logger.warning(f"[SEARCH] Cache flushed by admin ({deleted} entries)")
    return {
        "success": True,
        "message": "Flushed all cache entries",
        "deletedCount": deleted,
    }
