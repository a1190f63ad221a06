from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from celine.openid.core.healthcheck import is_healthly

router = APIRouter()
tags = ["health"]


@router.get("/health")
async def healthcheck():
    failed = await is_healthly()
    if failed:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Unhealthy: {', '.join(failed)}",
        )
    return {"status": "ready"}
