from fastapi import APIRouter, Request

from finance_tracker.api.schemas import FilterQueryResponse
from finance_tracker.domain.filters import (
    count_active_filters,
    deserialize_filter_state,
    has_active_filters,
    serialize_filter_state,
)

router = APIRouter(prefix="/api/v1/filters", tags=["filters"])


@router.get("/normalize")
def normalize_filter_query(request: Request) -> FilterQueryResponse:
    """Return the canonical form of a transaction filter query string."""
    state = deserialize_filter_state(request.query_params)
    return FilterQueryResponse(
        query=serialize_filter_state(state),
        active=has_active_filters(state),
        active_count=count_active_filters(state),
    )
