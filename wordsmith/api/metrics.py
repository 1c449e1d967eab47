from fastapi import APIRouter, Response

from wordsmith.core.metrics import METRICS

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics():
    """Prometheus text exposition of in-process counters."""
    return Response(METRICS.export_prometheus(), media_type="text/plain")
