"""Health check endpoints.

Provides:
- Liveness probe with engine status (/health)
"""

import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request

from app.config import get_settings

router = APIRouter(tags=["health"])

_start_time = time.monotonic()
_start_datetime = datetime.now(timezone.utc).isoformat()


@router.get("/health", response_model=dict[str, Any])
async def health_check(request: Request) -> dict[str, Any]:
    """
    Report service identity, uptime and whether the engine accepts runs.
    Used by load balancers as a liveness probe.
    """
    settings = get_settings()
    engine = getattr(request.app.state, "engine", None)
    accepting = bool(engine and engine.is_accepting)
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "ok" if accepting else "degraded",
        "started_at": _start_datetime,
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "engine": {
            "accepting_runs": accepting,
            "active_runs": len(engine.active_run_ids) if engine else 0,
        },
    }
