from fastapi import APIRouter

from cleanops.jobs.scheduler import get_job_status, scheduler

router = APIRouter()


@router.get("/status", summary="Scheduled Jobs")
async def job_status():
    return {
        "running": scheduler.running,
        "jobs": get_job_status(),
    }
