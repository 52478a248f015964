from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_job_service
from app.api.schemas import ApprovalActionRequest, JobResponse, JobSubmitRequest, JobSubmitResponse
from app.core.enums import JobStatus
from app.core.errors import ApprovalConflictError, JobNotFoundError
from app.core.security import require_api_key
from app.models.job import TranslationJobRequest
from app.services.jobs import JobService

router = APIRouter(prefix="/jobs", tags=["jobs"], dependencies=[Depends(require_api_key)])


@router.post("", response_model=JobSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_job(payload: JobSubmitRequest, service: JobService = Depends(get_job_service)):
    job = service.submit_job(TranslationJobRequest.model_validate(payload.model_dump()))
    return JobSubmitResponse(job_id=job.job_id, status=job.status, status_url=f"/jobs/{job.job_id}")


@router.get("", response_model=list[JobResponse])
def list_jobs(
    status: JobStatus | None = None,
    limit: int = 100,
    service: JobService = Depends(get_job_service),
):
    return service.list_jobs(status=status, limit=limit)


@router.get("/{job_id}", response_model=JobResponse)
def get_job(job_id: str, service: JobService = Depends(get_job_service)):
    job = service.get_job_state(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


async def _decide(service: JobService, job_id: str, approved: bool, payload: ApprovalActionRequest):
    try:
        job = await service.raise_approval_decision(
            job_id,
            approved=approved,
            reviewer=payload.reviewer,
            reason=payload.reason,
            comments=payload.comments,
        )
    except JobNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Job not found") from exc
    except ApprovalConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"job_id": job.job_id, "status": job.status.value, "approved": approved}


@router.post("/{job_id}/approve")
async def approve_job(
    job_id: str,
    payload: ApprovalActionRequest,
    service: JobService = Depends(get_job_service),
):
    return await _decide(service, job_id, True, payload)


@router.post("/{job_id}/reject")
async def reject_job(
    job_id: str,
    payload: ApprovalActionRequest,
    service: JobService = Depends(get_job_service),
):
    return await _decide(service, job_id, False, payload)
