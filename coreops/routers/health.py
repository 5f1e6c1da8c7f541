from __future__ import annotations

from fastapi import APIRouter

from coreops.security.month_close import RouteGroup

router = APIRouter(tags=[RouteGroup.HEALTH.value])


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
