"""
Agency job endpoints.

Jobs posted by an agency on behalf of a client. Every mutation is checked
against the current state of the governing authorization.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_db, get_company_user
from app.core.authorization_states import JobAction
from app.core.errors import raise_for_result
from app.core.service_dependency import get_job_resolver
from app.db.models.job import Job
from app.db.models.user import User
from app.schemas.job import (
    AgencyJobCreate,
    AgencyJobUpdate,
    JobResponse,
    JobPermissionResponse,
)
from app.services.job_attribution import JobAttributionResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agency/jobs", tags=["Agency Jobs"])


def get_agency_job(job_id: int, user: User, db: Session) -> Job:
    """Fetch a job posted by the user's agency (404 otherwise)."""
    job = db.query(Job).filter(
        Job.id == job_id,
        Job.posted_by_agency_id == user.company_id
    ).first()
    if not job:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found"
        )
    return job


@router.post("", status_code=status.HTTP_201_CREATED, response_model=JobResponse)
def post_agency_job(
    job_data: AgencyJobCreate,
    user: User = Depends(get_company_user),
    resolver: JobAttributionResolver = Depends(get_job_resolver),
    db: Session = Depends(get_db)
):
    """
    Post a job for a client company.

    Requires an active authorization for the client that allows posting,
    has a free job slot and covers the job's category and location.
    """
    try:
        draft = job_data.model_dump(exclude={"client_company_id"})
        job = raise_for_result(resolver.post_job(db, user, job_data.client_company_id, draft))
        return JobResponse.model_validate(job)

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to post agency job: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to post job"
        )


@router.put("/{job_id}", status_code=status.HTTP_200_OK, response_model=JobResponse)
def update_agency_job(
    job_id: int,
    job_data: AgencyJobUpdate,
    user: User = Depends(get_company_user),
    resolver: JobAttributionResolver = Depends(get_job_resolver),
    db: Session = Depends(get_db)
):
    """Edit an agency-posted job. Closing it frees its quota slot."""
    try:
        job = get_agency_job(job_id, user, db)
        changes = job_data.model_dump(exclude_unset=True)
        job = raise_for_result(resolver.edit_job(db, user, job, changes))
        return JobResponse.model_validate(job)

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to update agency job: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update job"
        )


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_agency_job(
    job_id: int,
    user: User = Depends(get_company_user),
    resolver: JobAttributionResolver = Depends(get_job_resolver),
    db: Session = Depends(get_db)
):
    """Delete an agency-posted job."""
    try:
        job = get_agency_job(job_id, user, db)
        raise_for_result(resolver.delete_job(db, user, job))
        return None

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to delete agency job: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete job"
        )


@router.get("/{job_id}/permissions", status_code=status.HTTP_200_OK, response_model=JobPermissionResponse)
def get_agency_job_permissions(
    job_id: int,
    user: User = Depends(get_company_user),
    resolver: JobAttributionResolver = Depends(get_job_resolver),
    db: Session = Depends(get_db)
):
    """What the agency may currently do with this job."""
    try:
        job = get_agency_job(job_id, user, db)
        permissions = {}
        denials = {}
        for action in (JobAction.EDIT, JobAction.DELETE, JobAction.VIEW_APPLICATIONS):
            result = resolver.authorize_existing(db, user, job, action)
            permissions[action.value] = result.ok
            if not result.ok:
                denials[action.value] = result.code.value
        return JobPermissionResponse(
            job_id=job.id,
            authorization_id=job.authorization_id,
            permissions=permissions,
            denials=denials
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get job permissions: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get job permissions"
        )
