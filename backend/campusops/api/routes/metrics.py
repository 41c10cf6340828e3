"""Prometheus metrics endpoint."""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter()


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint.

    Exposes all registered Prometheus metrics including:
    - tenancy_denials_total{reason}
    - scoped_operations_total{handle, operation}
    - setup_token_validations_total{outcome}
    """
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
