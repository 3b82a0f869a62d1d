"""Job admission and control endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ordermgmt_kernel.access import MembershipRole, Principal

from ordermgmt_jobs.domain.types import Job, JobStatus
from ordermgmt_jobs.services.control import JobControlService

from ordermgmt_api.dependencies import ApiState, TenantAccess, get_access, get_db, get_state, member_access
from ordermgmt_api.schemas import (
    JobListResponse,
    JobStatusResponse,
    JobView,
    StartJobRequest,
    TenantRequest,
)


router = APIRouter(prefix="/jobs", tags=["jobs"])


def _control(state: ApiState, db: Session) -> JobControlService:
    return state.orchestrator(db).create_control_service()


def _status(job: Job) -> JobStatusResponse:
    return JobStatusResponse(job_id=job.job_id, status=job.status)


@router.post("/bulk-op/start", response_model=JobStatusResponse)
def start_bulk_op(
    body: StartJobRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> JobStatusResponse:
    principal = access.require(body.tenant_id, MembershipRole.ADMIN)
    job = _control(state, db).start_job(
        body.tenant_id,
        body.job_type,
        parameters=body.op_params,
        priority=body.priority,
        actor_id=principal.user_id,
    )
    db.commit()
    return _status(job)


@router.post("/{job_id}/pause", response_model=JobStatusResponse)
def pause_job(
    job_id: UUID,
    body: TenantRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> JobStatusResponse:
    access.require(body.tenant_id, MembershipRole.ADMIN)
    job = _control(state, db).pause(body.tenant_id, job_id)
    db.commit()
    return _status(job)


@router.post("/{job_id}/resume", response_model=JobStatusResponse)
def resume_job(
    job_id: UUID,
    body: TenantRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> JobStatusResponse:
    principal = access.require(body.tenant_id, MembershipRole.ADMIN)
    job = _control(state, db).resume(body.tenant_id, job_id, actor_id=principal.user_id)
    db.commit()
    return _status(job)


@router.post("/{job_id}/retry-failed", response_model=JobStatusResponse)
def retry_failed_items(
    job_id: UUID,
    body: TenantRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> JobStatusResponse:
    principal = access.require(body.tenant_id, MembershipRole.ADMIN)
    job = _control(state, db).retry_failed_items(body.tenant_id, job_id, actor_id=principal.user_id)
    db.commit()
    return _status(job)


@router.post("/{job_id}/cancel", response_model=JobStatusResponse)
def cancel_job(
    job_id: UUID,
    body: TenantRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> JobStatusResponse:
    access.require(body.tenant_id, MembershipRole.ADMIN)
    job = _control(state, db).cancel(body.tenant_id, job_id)
    db.commit()
    return _status(job)


@router.post("/{job_id}/force-stop", response_model=JobStatusResponse)
def force_stop_job(
    job_id: UUID,
    body: TenantRequest,
    state: ApiState = Depends(get_state),
    access: TenantAccess = Depends(get_access),
    db: Session = Depends(get_db),
) -> JobStatusResponse:
    access.require(body.tenant_id, MembershipRole.ADMIN)
    job = _control(state, db).force_stop(body.tenant_id, job_id)
    db.commit()
    return _status(job)


@router.get("", response_model=JobListResponse)
def list_jobs(
    tenant_id: UUID,
    status_filter: list[JobStatus] | None = Query(None),
    limit: int | None = Query(None, ge=1, le=500),
    principal: Principal = Depends(member_access),
    state: ApiState = Depends(get_state),
    db: Session = Depends(get_db),
) -> JobListResponse:
    jobs = _control(state, db).list_jobs(tenant_id, statuses=status_filter, limit=limit)
    return JobListResponse(jobs=[JobView.model_validate(job) for job in jobs])


@router.get("/{job_id}", response_model=JobView)
def get_job(
    job_id: UUID,
    tenant_id: UUID,
    principal: Principal = Depends(member_access),
    state: ApiState = Depends(get_state),
    db: Session = Depends(get_db),
) -> JobView:
    return JobView.model_validate(_control(state, db).get_job(tenant_id, job_id))
