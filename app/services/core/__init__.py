"""
Core services shared by the sync pipeline.

- results_api_service: result provider client (event info, divisions, bouts, placements)
"""
from app.services.core.results_api_service import (
    ResultsApiService,
    get_results_service,
    parse_provider_event_id,
)

__all__ = [
    "ResultsApiService",
    "get_results_service",
    "parse_provider_event_id",
]
