"""
Admin API Routes

Operator endpoints, protected by the worker secret:
- Recent logs and errors from the in-memory buffer
- Job queue statistics
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from talebox.config import config
from talebox.database.jobs import JobQueueService
from talebox.routes.story import get_job_queue
from talebox.security import verify_worker_secret
from talebox.utils.logging import LogLevel, get_log_buffer, get_logger

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(verify_worker_secret)],
)
logger = get_logger("admin")


# ===== Jobs =====

@router.get("/jobs/stats")
async def get_job_stats(jobs: JobQueueService = Depends(get_job_queue)):
    """Counts of story jobs by status."""
    try:
        stats = await jobs.get_queue_stats()
    except Exception as e:
        logger.error(f"Failed to fetch job stats: {e}", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": config.ENVIRONMENT,
        "jobs": stats,
    }


# ===== Logs =====

@router.get("/logs")
async def get_logs(
    limit: int = Query(100, ge=1, le=500),
    level: Optional[str] = Query(None, description="Filter by level (debug, info, warning, error, critical)"),
    source: Optional[str] = Query(None, description="Filter by source"),
    story_id: Optional[str] = Query(None, description="Only entries logged for this story"),
    job_id: Optional[str] = Query(None, description="Only entries logged for this job"),
):
    """Get recent log entries from the in-memory buffer."""
    log_buffer = get_log_buffer()

    level_filter = None
    if level:
        try:
            level_filter = LogLevel(level.lower())
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid log level: {level}")

    return {
        "logs": log_buffer.get_recent(
            limit=limit,
            level=level_filter,
            source=source,
            story_id=story_id,
            job_id=job_id,
        ),
        "stats": log_buffer.get_stats(),
    }


@router.get("/logs/errors")
async def get_error_logs(limit: int = Query(50, ge=1, le=200)):
    """Get recent error and critical log entries."""
    return {"errors": get_log_buffer().get_errors(limit=limit)}


@router.post("/logs/clear")
async def clear_logs():
    """Clear the in-memory log buffer."""
    get_log_buffer().clear()
    logger.info("Log buffer cleared by admin")
    return {"status": "cleared"}
