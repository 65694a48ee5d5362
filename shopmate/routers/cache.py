# shopmate/routers/cache.py
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from shopmate.dependencies import get_job_registry, get_session_cache
from shopmate.session_cache import TTLCache
from shopmate.streaming import JobRegistry

router = APIRouter(prefix="/api/cache")


class ClearRequest(BaseModel):
    type: str = "all"


@router.get("/stats")
async def cache_stats(sessions: TTLCache = Depends(get_session_cache), jobs: JobRegistry = Depends(get_job_registry)):
    stats = sessions.stats()
    return {
        "dataCache": stats,
        "inFlight": [list(k) for k in jobs.in_flight()],
        "totalItems": stats["size"],
    }


@router.post("/clear")
async def cache_clear(req: ClearRequest, sessions: TTLCache = Depends(get_session_cache)):
    if req.type not in ("all", "data"):
        raise HTTPException(status_code=400, detail="Invalid cache type")
    sessions.clear()
    return {"success": True, "message": f"{req.type} cache cleared successfully"}
