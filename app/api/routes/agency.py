"""
Agency endpoints for client authorizations.

An agency user requests authorization to act for a client company, lists
its authorizations and can revoke an active one.
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
    AuthorizationRequest,
    AuthorizationResponse,
    AuthorizationListResponse,
    RevokeRequest,
)
from app.services.authorization_service import AuthorizationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agency/clients", tags=["Agency Authorizations"])


def _own_authorization(service: AuthorizationService, db: Session, authorization_id: int, user: User):
    record = service.get(db, authorization_id)
    if record is None or record.agency_company_id != user.company_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Authorization not found"
        )
    return record


@router.post("", status_code=status.HTTP_201_CREATED, response_model=AuthorizationResponse)
def request_client_authorization(
    request: AuthorizationRequest,
    user: User = Depends(get_company_user),
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """
    Request authorization to post jobs for a client company.

    The request is verified right away: it either waits for the client's
    confirmation or for an admin review.
    """
    try:
        fields = request.model_dump(exclude={"client_company_id"})
        result = service.request(
            db,
            agency_company_id=user.company_id,
            client_company_id=request.client_company_id,
            requested_by=user,
            **fields,
        )
        record = raise_for_result(result)
        return AuthorizationResponse.model_validate(record)

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to request client authorization: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to request client authorization"
        )


@router.get("", status_code=status.HTTP_200_OK, response_model=AuthorizationListResponse)
def list_client_authorizations(
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by status"),
    user: User = Depends(get_company_user),
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """List the agency's client authorizations, newest first."""
    try:
        records = service.list_by_agency(db, user.company_id, status=status_filter)
        return AuthorizationListResponse(
            authorizations=[AuthorizationResponse.model_validate(record) for record in records],
            total=len(records)
        )

    except Exception as e:
        logger.error(f"Failed to list client authorizations: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list client authorizations"
        )


@router.get("/active", status_code=status.HTTP_200_OK, response_model=AuthorizationListResponse)
def list_active_clients(
    user: User = Depends(get_company_user),
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """Clients the agency can currently post jobs for."""
    try:
        records = [
            record for record in service.list_by_agency(db, user.company_id, status="active")
            if record.can_post_jobs
        ]
        return AuthorizationListResponse(
            authorizations=[AuthorizationResponse.model_validate(record) for record in records],
            total=len(records)
        )

    except Exception as e:
        logger.error(f"Failed to list active clients: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list active clients"
        )


@router.get("/{authorization_id}", status_code=status.HTTP_200_OK, response_model=AuthorizationResponse)
def get_client_authorization(
    authorization_id: int,
    user: User = Depends(get_company_user),
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """Get one of the agency's authorizations. Returns 404 for other agencies' records."""
    try:
        record = _own_authorization(service, db, authorization_id, user)
        return AuthorizationResponse.model_validate(record)

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to get client authorization: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get client authorization"
        )


@router.post("/{authorization_id}/revoke", status_code=status.HTTP_200_OK, response_model=AuthorizationResponse)
def revoke_client_authorization(
    authorization_id: int,
    request: RevokeRequest,
    user: User = Depends(get_company_user),
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """Revoke an active authorization. Posted jobs stay but can no longer be managed by the agency."""
    try:
        _own_authorization(service, db, authorization_id, user)
        record = raise_for_result(service.revoke(db, authorization_id, user, request.reason))
        return AuthorizationResponse.model_validate(record)

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to revoke client authorization: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to revoke client authorization"
        )
