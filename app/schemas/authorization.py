"""
Pydantic schemas for agency-client authorization endpoints.
"""
from typing import Optional, List, Dict
from datetime import date, datetime
from pydantic import BaseModel, Field


class AuthorizationRequest(BaseModel):
    """Schema for an agency requesting authorization to act for a client."""
    client_company_id: int = Field(..., description="Client company the agency will post for")
    contract_start_date: Optional[date] = Field(None, description="Contract start date (UTC)")
    contract_end_date: Optional[date] = Field(None, description="Contract end date, inclusive (UTC)")
    auto_renew: bool = Field(False, description="Renew the contract window automatically when it lapses")

    can_post_jobs: bool = Field(True, description="Agency may post jobs")
    can_edit_jobs: bool = Field(True, description="Agency may edit jobs it posted")
    can_delete_jobs: bool = Field(False, description="Agency may delete jobs it posted")
    can_view_applications: bool = Field(True, description="Agency may view applications")
    max_active_jobs: Optional[int] = Field(None, ge=0, description="Maximum active jobs (omit for unlimited)")
    job_categories: List[str] = Field(default_factory=list, description="Allowed job categories (empty = all)")
    allowed_locations: List[str] = Field(default_factory=list, description="Allowed job locations (empty = all)")

    authorization_letter_url: Optional[str] = Field(None, max_length=500, description="Signed authorization letter")
    service_agreement_url: Optional[str] = Field(None, max_length=500, description="Service agreement")
    client_gst_url: Optional[str] = Field(None, max_length=500, description="Client GST certificate")
    client_pan_url: Optional[str] = Field(None, max_length=500, description="Client PAN card")
    additional_documents: List[str] = Field(default_factory=list, description="Other document URLs")

    verification_method: str = Field(
        default="manual_review",
        description="Verification method",
        pattern="^(automated_gst|manual_review|hybrid)$"
    )
    client_contact_email: Optional[str] = Field(None, max_length=255, description="Client contact who will confirm")
    client_contact_name: Optional[str] = Field(None, max_length=255, description="Client contact name")
    client_contact_phone: Optional[str] = Field(None, max_length=50, description="Client contact phone")
    confirmation_allowed_emails: List[str] = Field(
        default_factory=list,
        description="Additional client emails allowed to confirm this request"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "client_company_id": 42,
                "contract_start_date": "2026-01-01",
                "contract_end_date": "2026-12-31",
                "auto_renew": False,
                "can_post_jobs": True,
                "max_active_jobs": 10,
                "job_categories": ["engineering"],
                "allowed_locations": ["Bengaluru", "Remote"],
                "verification_method": "hybrid",
                "client_contact_email": "hr@client.example"
            }
        }


class AuthorizationResponse(BaseModel):
    """Full authorization view for the agency and admins."""
    id: int = Field(..., description="Authorization ID")
    agency_company_id: int = Field(..., description="Agency company ID")
    client_company_id: int = Field(..., description="Client company ID")
    status: str = Field(..., description="Lifecycle status")

    contract_start_date: Optional[date] = None
    contract_end_date: Optional[date] = None
    auto_renew: bool = False

    can_post_jobs: bool
    can_edit_jobs: bool
    can_delete_jobs: bool
    can_view_applications: bool
    max_active_jobs: Optional[int] = None
    job_categories: List[str] = Field(default_factory=list)
    allowed_locations: List[str] = Field(default_factory=list)

    verification_method: str
    verification_notes: Optional[str] = None
    verified_at: Optional[datetime] = None
    client_contact_email: Optional[str] = None
    client_confirmed_at: Optional[datetime] = None
    client_confirmed_by: Optional[str] = None
    admin_approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None
    expired_at: Optional[datetime] = None
    renewal_count: int = 0

    jobs_posted: int = 0
    active_jobs_count: int = 0
    total_applications: int = 0
    last_job_posted_at: Optional[datetime] = None

    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AdminAuthorizationResponse(AuthorizationResponse):
    """Admin view adds the review trail and notes."""
    verified_by: Optional[int] = None
    admin_approved_by: Optional[int] = None
    rejected_by: Optional[int] = None
    revoked_by: Optional[int] = None
    internal_notes: Optional[str] = None
    authorization_letter_url: Optional[str] = None
    service_agreement_url: Optional[str] = None
    client_gst_url: Optional[str] = None
    client_pan_url: Optional[str] = None
    additional_documents: List[str] = Field(default_factory=list)

    class Config:
        from_attributes = True


class AuthorizationListResponse(BaseModel):
    """Schema for a list of authorizations."""
    authorizations: List[AuthorizationResponse] = Field(..., description="Authorizations")
    total: int = Field(..., description="Number of authorizations returned")


class AdminAuthorizationListResponse(BaseModel):
    authorizations: List[AdminAuthorizationResponse] = Field(..., description="Authorizations")
    total: int = Field(..., description="Number of authorizations returned")
    limit: int = Field(..., description="Page size")
    offset: int = Field(..., description="Offset")


class ClientAuthorizationSummary(BaseModel):
    """What a client contact sees before confirming: no counters, notes or tokens."""
    id: int = Field(..., description="Authorization ID")
    agency_company_id: int = Field(..., description="Agency company ID")
    agency_name: Optional[str] = Field(None, description="Agency company name")
    client_company_id: int = Field(..., description="Client company ID")
    status: str = Field(..., description="Lifecycle status")
    contract_start_date: Optional[date] = None
    contract_end_date: Optional[date] = None
    can_post_jobs: bool
    can_edit_jobs: bool
    can_delete_jobs: bool
    can_view_applications: bool
    max_active_jobs: Optional[int] = None
    job_categories: List[str] = Field(default_factory=list)
    allowed_locations: List[str] = Field(default_factory=list)
    confirmation_expires_at: Optional[datetime] = None


class ClientDecisionRequest(BaseModel):
    """Client contact confirming or declining with the emailed token."""
    email: str = Field(..., min_length=3, max_length=255, description="Email of the confirming client contact")
    token: str = Field(..., min_length=1, description="Verification token from the confirmation email")
    reason: Optional[str] = Field(None, max_length=2000, description="Reason (decline only)")


class AdminDecisionRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000, description="Notes for approval, required for rejection")


class RevokeRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000, description="Why the authorization is revoked")


class CounterAdjustmentRequest(BaseModel):
    """Admin corrective action on usage counters."""
    reason: str = Field(..., min_length=1, max_length=2000, description="Why the counters are adjusted")
    jobs_posted: Optional[int] = Field(None, ge=0)
    active_jobs_count: Optional[int] = Field(None, ge=0)
    total_applications: Optional[int] = Field(None, ge=0)


class AuthorizationStatsResponse(BaseModel):
    total: int = Field(..., description="All authorizations")
    by_status: Dict[str, int] = Field(..., description="Count per status")
    by_group: Dict[str, int] = Field(..., description="Count per dashboard group (pending, active, ended, rejected)")


class SweepResponse(BaseModel):
    expired: List[int] = Field(default_factory=list)
    renewed: List[int] = Field(default_factory=list)
    escalated: List[int] = Field(default_factory=list)
    reminded: List[int] = Field(default_factory=list)
