from __future__ import annotations

from fastapi import APIRouter

from tablepos.core.metrics import order_metrics, request_metrics

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("/endpoints")
def endpoint_metrics():
    return {"endpoints": request_metrics.snapshot()}


@router.get("/tables")
def table_metrics():
    return {"tables": request_metrics.snapshot_per_table()}


@router.get("/orders")
def order_flow_metrics():
    return order_metrics.snapshot()
