import resource
import time

from fastapi import APIRouter

from squadbot.utils.clock import utcnow

router = APIRouter(tags=["health"])

STARTED_AT = time.monotonic()

@router.get("/health")
async def health_check():
    usage = resource.getrusage(resource.RUSAGE_SELF)
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat() + "Z",
        "uptime": round(time.monotonic() - STARTED_AT, 3),
        "memory": {"max_rss_kb": usage.ru_maxrss},
    }
