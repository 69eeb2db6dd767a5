"""Supplier reply simulation routes."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request, status


router = APIRouter(prefix="/simulation", tags=["Simulation"])


def _get_simulator(request: Request) -> Any:
    simulator = getattr(request.app.state, "simulator", None)
    if simulator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reply simulation is not enabled",
        )
    return simulator


@router.post("/trigger/{rfq_id}")
def trigger_simulation(rfq_id: str, request: Request):
    tasks = _get_simulator(request).trigger(rfq_id)
    return {"message": "Simulation triggered", "tasks": tasks}


@router.get("/status")
def simulation_status(request: Request, rfq_id: Optional[str] = None):
    return _get_simulator(request).status(rfq_id)
