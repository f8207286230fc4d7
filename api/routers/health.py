"""
Health Router - Readiness and circuit breaker status endpoints
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from api.dependencies import AppState, get_app_state

router = APIRouter()


@router.get("/ready")
async def health_check_ready(state: AppState = Depends(get_app_state)) -> Dict[str, Any]:
    """
    Readiness probe.

    Ready as soon as the snapshot is loaded; a disconnected primary store
    only changes which backend answers.
    """
    return {
        "ready": state.is_ready(),
        "details": state.get_status(),
    }


@router.get("/circuits")
async def circuit_states(state: AppState = Depends(get_app_state)) -> Dict[str, Any]:
    """State and counters of every circuit breaker"""
    return {"circuits": state.registry.states()}
