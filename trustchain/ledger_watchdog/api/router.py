# -*- coding: utf-8 -*-
"""
Ledger Watchdog REST API Router

FastAPI router exposing integrity checks, operator-triggered audits and
syncs, and watchdog status at prefix ``/api/v1/integrity``.

Endpoints:
    GET  /check/{vin}          - Check one record by VIN
    GET  /vehicle/{vehicle_id} - Check one record by internal id
    POST /batch                - Check up to ``max_batch_size`` records by id
    GET  /sync-status          - Last full sync result
    POST /sync-run             - Run a full sync now
    POST /audit                - Run a forensic audit now
    POST /watchdog/run         - Run one watchdog cycle now (alerts on findings)
    GET  /watchdog/status      - Scheduler status
    GET  /health               - Service health

Handlers are plain ``def`` so the blocking engines run in the server's
threadpool. The service is taken from ``app.state.ledger_watchdog_service``
when configured, otherwise from the process singleton.

Author: TrustChain Platform Team
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Request

from trustchain.ledger_watchdog.models import BatchCheckRequest, RunAuditRequest
from trustchain.ledger_watchdog.setup import LedgerWatchdogService, get_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/integrity",
    tags=["integrity"],
)


def _svc(request: Request) -> LedgerWatchdogService:
    """Service attached to the app, falling back to the singleton."""
    service = getattr(request.app.state, "ledger_watchdog_service", None)
    return service if service is not None else get_service()


# ---------------------------------------------------------------------------
# Integrity checks
# ---------------------------------------------------------------------------


@router.get("/check/{vin}")
def check_by_vin(vin: str, request: Request) -> Dict[str, Any]:
    """Check the integrity of one record by VIN."""
    key = vin.strip().upper()
    if not key:
        raise HTTPException(status_code=400, detail="VIN is required")
    verdict = _svc(request).check_by_key(key)
    return {"success": True, **verdict.model_dump(mode="json")}


@router.get("/vehicle/{vehicle_id}")
def check_by_vehicle_id(vehicle_id: str, request: Request) -> Dict[str, Any]:
    """Check the integrity of one record by internal id."""
    if not vehicle_id.strip():
        raise HTTPException(status_code=400, detail="Vehicle ID is required")
    verdict = _svc(request).check_by_id(vehicle_id.strip())
    return {"success": True, **verdict.model_dump(mode="json")}


@router.post("/batch")
def check_batch(body: BatchCheckRequest, request: Request) -> Dict[str, Any]:
    """Check a batch of records by internal id, truncated to the configured max."""
    if not body.vehicle_ids:
        raise HTTPException(status_code=400, detail="vehicle_ids array is required")
    result = _svc(request).check_batch_by_ids(body.vehicle_ids)
    return {"success": True, **result.model_dump(mode="json")}


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


@router.get("/sync-status")
def sync_status(request: Request) -> Dict[str, Any]:
    return _svc(request).get_sync_status().model_dump(mode="json")


@router.post("/sync-run")
def sync_run(request: Request) -> Dict[str, Any]:
    """Run a full sync; returns ``success=false`` while another is in progress."""
    logger.info("Operator triggered full sync")
    return _svc(request).run_full_sync().model_dump(mode="json")


# ---------------------------------------------------------------------------
# Audits and watchdog
# ---------------------------------------------------------------------------


@router.post("/audit")
def run_audit(request: Request, body: Optional[RunAuditRequest] = None) -> Dict[str, Any]:
    """Run a forensic audit, optionally overriding the auto-heal flag."""
    auto_heal = body.auto_heal if body is not None else None
    logger.info("Operator triggered forensic audit (auto_heal=%s)", auto_heal)
    return _svc(request).run_forensic_audit(auto_heal=auto_heal).model_dump(mode="json")


@router.post("/watchdog/run")
def run_watchdog(request: Request) -> Dict[str, Any]:
    return _svc(request).run_watchdog_once().model_dump(mode="json")


@router.get("/watchdog/status")
def watchdog_status(request: Request) -> Dict[str, Any]:
    return _svc(request).get_watchdog_status().model_dump(mode="json")


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    return _svc(request).health_check()


__all__ = ["router"]
