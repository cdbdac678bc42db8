"""
Admin endpoints for agency-client authorizations.

Review queue, approve/reject decisions, revocation, counter corrections and
a manual trigger for the contract sweep.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from app.core.auth_dependency import get_db, require_admin
from app.core.errors import raise_for_result
from app.core.service_dependency import get_authorization_service, get_lifecycle_manager
from app.db.models.user import User
from app.schemas.authorization import (
    AdminAuthorizationResponse,
    AdminAuthorizationListResponse,
    AdminDecisionRequest,
    AuthorizationStatsResponse,
    CounterAdjustmentRequest,
    RevokeRequest,
    SweepResponse,
)
from app.services.authorization_lifecycle import AuthorizationLifecycleManager
from app.services.authorization_service import AuthorizationService
from app.services.contract_expiry_service import run_expiry_sweep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/agency-authorizations", tags=["Admin"])


@router.get("", status_code=status.HTTP_200_OK, response_model=AdminAuthorizationListResponse)
def list_authorizations(
    status_filter: Optional[str] = Query(
        None, alias="status", description="Status group (pending, active, ended, rejected) or a single status"
    ),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    offset: int = Query(0, ge=0, description="Offset"),
    admin: User = Depends(require_admin),
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """List authorizations for review, newest first."""
    try:
        records = raise_for_result(service.list_for_admin(db, status_filter, limit=limit, offset=offset))
        return AdminAuthorizationListResponse(
            authorizations=[AdminAuthorizationResponse.model_validate(record) for record in records],
            total=len(records),
            limit=limit,
            offset=offset
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to list authorizations: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list authorizations"
        )


@router.get("/stats", status_code=status.HTTP_200_OK, response_model=AuthorizationStatsResponse)
def authorization_stats(
    admin: User = Depends(require_admin),
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """Counts per status and per dashboard group."""
    try:
        return AuthorizationStatsResponse(**service.stats(db))

    except Exception as e:
        logger.error(f"Failed to compute authorization stats: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute authorization stats"
        )


@router.post("/sweep", status_code=status.HTTP_200_OK, response_model=SweepResponse)
def run_sweep(
    admin: User = Depends(require_admin),
    manager: AuthorizationLifecycleManager = Depends(get_lifecycle_manager),
    db: Session = Depends(get_db)
):
    """Run the contract sweep now (expiry, renewal, confirmation timeouts, reminders)."""
    try:
        report = run_expiry_sweep(db, manager)
        logger.info(f"Sweep triggered by admin: admin_id={admin.id}")
        return SweepResponse(**report.to_dict())

    except Exception as e:
        db.rollback()
        logger.error(f"Failed to run contract sweep: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to run contract sweep"
        )


def _decide(service: AuthorizationService, db: Session, authorization_id: int, approve: bool,
            admin: User, reason: Optional[str], action: str):
    try:
        record = raise_for_result(service.admin_decide(db, authorization_id, approve, admin, reason=reason))
        return AdminAuthorizationResponse.model_validate(record)

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to {action} authorization: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to {action} authorization"
        )


@router.post("/{authorization_id}/approve", status_code=status.HTTP_200_OK, response_model=AdminAuthorizationResponse)
def approve_authorization(
    authorization_id: int,
    request: Optional[AdminDecisionRequest] = None,
    admin: User = Depends(require_admin),
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """Approve a request waiting for admin review."""
    reason = request.reason if request else None
    return _decide(service, db, authorization_id, True, admin, reason, "approve")


@router.post("/{authorization_id}/reject", status_code=status.HTTP_200_OK, response_model=AdminAuthorizationResponse)
def reject_authorization(
    authorization_id: int,
    request: AdminDecisionRequest,
    admin: User = Depends(require_admin),
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """Reject a request waiting for admin review. A reason is required."""
    return _decide(service, db, authorization_id, False, admin, request.reason, "reject")


@router.post("/{authorization_id}/revoke", status_code=status.HTTP_200_OK, response_model=AdminAuthorizationResponse)
def admin_revoke_authorization(
    authorization_id: int,
    request: RevokeRequest,
    admin: User = Depends(require_admin),
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """Revoke an active authorization."""
    try:
        record = raise_for_result(service.revoke(db, authorization_id, admin, request.reason))
        return AdminAuthorizationResponse.model_validate(record)

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to revoke authorization: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to revoke authorization"
        )


@router.post("/{authorization_id}/counters", status_code=status.HTTP_200_OK, response_model=AdminAuthorizationResponse)
def adjust_authorization_counters(
    authorization_id: int,
    request: CounterAdjustmentRequest,
    admin: User = Depends(require_admin),
    service: AuthorizationService = Depends(get_authorization_service),
    db: Session = Depends(get_db)
):
    """Correct usage counters. Posted and application counts can only go up."""
    try:
        counters = request.model_dump(exclude={"reason"}, exclude_none=True)
        record = raise_for_result(
            service.adjust_counters(db, authorization_id, admin, request.reason, **counters)
        )
        return AdminAuthorizationResponse.model_validate(record)

    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to adjust authorization counters: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to adjust authorization counters"
        )
