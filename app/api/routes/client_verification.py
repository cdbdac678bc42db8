"""
Client endpoints for agency authorizations.

Client contacts confirm or decline a request with the token from their
confirmation email; no login is needed for that. Logged-in client users
can list the agencies acting for their company.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_db, get_company_user
from app.core.errors import raise_for_result
from app.core.service_dependency import get_authorization_service
from app.db.models.user import User
from app.schemas.authorization import (
    AuthorizationResponse,
    AuthorizationListResponse,
    ClientAuthorizationSummary,
    ClientDecisionRequest,
)
from app.services.authorization_service import AuthorizationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/client/authorizations", tags=["Client Verification"])


def _summary(record) -> ClientAuthorizationSummary:
    return ClientAuthorizationSummary(
        id=record.id,
        agency_company_id=record.agency_company_id,
        agency_name=record.agency_company.name if record.agency_company else None,
        client_company_id=record.client_company_id,
        status=record.status,
        contract_start_date=record.contract_start_date,
        contract_end_date=record.contract_end_date,
        can_post_jobs=record.can_post_jobs,
        can_edit_jobs=record.can_edit_jobs,
        can_delete_jobs=record.can_delete_jobs,
        can_view_applications=record.can_view_applications,
        max_active_jobs=record.max_active_jobs,
        job_categories=record.job_categories or [],
        allowed_locations=record.allowed_locations or [],
        confirmation_expires_at=record.client_verification_token_expiry,
    )


@router.get("", status_code=status.HTTP_200_OK, response_model=AuthorizationListResponse)
def list_company_authorizations(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    user: User = Depends(get_company_user),
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """Agencies that hold (or requested) authorization for the caller's company."""
    try:
        records = service.list_by_client(db, user.company_id, status=status_filter)
        return AuthorizationListResponse(
            authorizations=[AuthorizationResponse.model_validate(record) for record in records],
            total=len(records)
        )

    except Exception as e:
        logger.error(f"Failed to list company authorizations: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list company authorizations"
        )


@router.get("/{authorization_id}", status_code=status.HTTP_200_OK, response_model=ClientAuthorizationSummary)
def get_authorization_summary(
    authorization_id: int,
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """Public summary a client contact reviews before deciding."""
    try:
        record = service.get(db, authorization_id)
        if record is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Authorization not found"
            )
        return _summary(record)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get authorization summary: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get authorization summary"
        )


@router.post("/{authorization_id}/confirm", status_code=status.HTTP_200_OK, response_model=ClientAuthorizationSummary)
def confirm_authorization(
    authorization_id: int,
    request: ClientDecisionRequest,
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """Client contact confirms the agency. The authorization becomes active."""
    try:
        record = raise_for_result(
            service.confirm_by_client(db, authorization_id, request.email, token=request.token)
        )
        return _summary(record)

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to confirm authorization: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to confirm authorization"
        )


@router.post("/{authorization_id}/decline", status_code=status.HTTP_200_OK, response_model=ClientAuthorizationSummary)
def decline_authorization(
    authorization_id: int,
    request: ClientDecisionRequest,
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """Client contact declines the agency. The request is rejected."""
    try:
        record = raise_for_result(
            service.decline_by_client(db, authorization_id, request.email, token=request.token, reason=request.reason)
        )
        return _summary(record)

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to decline authorization: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to decline authorization"
        )
