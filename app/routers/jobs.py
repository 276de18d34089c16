from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.core.pagination import Page
from app.deps import get_current_user, get_manager
from app.models.dispute import DisputeType
from app.models.job import Job, JobStatus, Location
from app.models.job_completion import CompletionProof
from app.models.penalty import PenaltyType
from app.models.user import User
from app.services.jobs import JobLifecycleManager

router = APIRouter()


class JobCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    category: str = Field(min_length=1, max_length=100)
    description: str = ""
    payment_amount: int
    location: Location
    images: list[str] = Field(default_factory=list)


class SelectWorkerRequest(BaseModel):
    worker_id: str


class CompletionSubmit(BaseModel):
    images: list[str] = Field(default_factory=list)
    description: str | None = None


class VerifyRequest(BaseModel):
    verified: bool
    rating: int | None = Field(default=None, ge=1, le=5)
    feedback: str | None = None


class PenaltyReport(BaseModel):
    type: PenaltyType
    description: str | None = None


class DisputeCreate(BaseModel):
    type: DisputeType
    description: str = Field(min_length=1)


@router.post("", status_code=201)
async def jobs_post(
    body: JobCreate,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    job = await manager.post(
        user,
        title=body.title,
        category=body.category,
        description=body.description,
        payment_amount=body.payment_amount,
        location=body.location,
        images=body.images,
    )
    return job


@router.get("")
async def jobs_list_open(
    status: list[JobStatus] | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
) -> Page[Job]:
    """Open jobs (POSTED and APPLIED unless a status filter is given), newest first."""
    jobs = await manager.list_open_jobs(statuses=status, limit=limit, offset=offset)
    return Page[Job](items=jobs, limit=limit, offset=offset)


@router.get("/mine")
async def jobs_list_mine(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    """Jobs posted by the current user with applicant counts."""
    rows = await manager.list_posted_jobs(user, limit=limit, offset=offset)
    items = [{**job.model_dump(mode="json"), "applicant_count": count} for job, count in rows]
    return {"items": items, "limit": limit, "offset": offset}


@router.get("/assigned")
async def jobs_list_assigned(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
) -> Page[Job]:
    jobs = await manager.list_assigned_jobs(user, limit=limit, offset=offset)
    return Page[Job](items=jobs, limit=limit, offset=offset)


@router.get("/{job_id}")
async def jobs_get(
    job_id: str,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    return await manager.get_job(job_id)


@router.get("/{job_id}/history")
async def jobs_history(
    job_id: str,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    """Audit trail of the job's status transitions, oldest first."""
    events = await manager.job_history(job_id)
    return {"events": events}


@router.get("/{job_id}/applications")
async def jobs_applications(
    job_id: str,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    """Applications for a job. Poster only."""
    return {"items": await manager.list_job_applications(user, job_id)}


@router.post("/{job_id}/apply", status_code=201)
async def jobs_apply(
    job_id: str,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    application = await manager.apply(user, job_id)
    return {"application": application, "job": await manager.get_job(job_id)}


@router.post("/{job_id}/select")
async def jobs_select_worker(
    job_id: str,
    body: SelectWorkerRequest,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    return await manager.select_worker(user, job_id, body.worker_id)


@router.post("/{job_id}/start")
async def jobs_start(
    job_id: str,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    return await manager.start_work(user, job_id)


@router.post("/{job_id}/complete")
async def jobs_submit_completion(
    job_id: str,
    body: CompletionSubmit,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    proof = CompletionProof(images=body.images, description=body.description)
    completion = await manager.submit_completion(user, job_id, proof)
    return {"completion": completion, "job": await manager.get_job(job_id)}


@router.post("/{job_id}/verify")
async def jobs_verify(
    job_id: str,
    body: VerifyRequest,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    return await manager.verify(user, job_id, body.verified, rating=body.rating, feedback=body.feedback)


@router.post("/{job_id}/penalty", status_code=201)
async def jobs_report_penalty(
    job_id: str,
    body: PenaltyReport,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    return await manager.report_penalty(user, job_id, body.type, body.description)


@router.post("/{job_id}/dispute", status_code=201)
async def jobs_raise_dispute(
    job_id: str,
    body: DisputeCreate,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    return await manager.raise_dispute(user, job_id, body.type, body.description)


@router.post("/{job_id}/cancel")
async def jobs_cancel(
    job_id: str,
    user: User = Depends(get_current_user),
    manager: JobLifecycleManager = Depends(get_manager),
):
    return await manager.cancel(user, job_id)
