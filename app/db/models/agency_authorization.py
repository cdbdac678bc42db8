"""
AgencyClientAuthorization model.

One row governs one agency -> client delegation: its status, permission
matrix, contract window, verification trail and usage counters. Rows are
never deleted; terminal rows stay for audit.
"""
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Date, DateTime, ForeignKey, JSON,
    Index, CheckConstraint, text,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base
from app.core.authorization_states import AuthorizationStatus, TERMINAL_STATUSES

_STATUS_VALUES = ", ".join(f"'{status.value}'" for status in AuthorizationStatus)
_TERMINAL_VALUES = ", ".join(f"'{status.value}'" for status in sorted(TERMINAL_STATUSES))
_OPEN_PAIR_WHERE = text(f"status NOT IN ({_TERMINAL_VALUES})")


class AgencyClientAuthorization(Base):
    __tablename__ = "agency_client_authorizations"

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    agency_company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    client_company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    status = Column(String(50), nullable=False, default=AuthorizationStatus.PENDING.value, index=True)

    # Contract window (dates, UTC)
    contract_start_date = Column(Date, nullable=True)
    contract_end_date = Column(Date, nullable=True)
    auto_renew = Column(Boolean, nullable=False, default=False)

    # Permission matrix
    can_post_jobs = Column(Boolean, nullable=False, default=False)
    can_edit_jobs = Column(Boolean, nullable=False, default=True)
    can_delete_jobs = Column(Boolean, nullable=False, default=False)
    can_view_applications = Column(Boolean, nullable=False, default=True)
    max_active_jobs = Column(Integer, nullable=True)  # NULL = unlimited
    job_categories = Column(JSON, nullable=False, default=list)  # empty = all
    allowed_locations = Column(JSON, nullable=False, default=list)  # empty = all

    # Documents (references only)
    authorization_letter_url = Column(String(500), nullable=True)
    service_agreement_url = Column(String(500), nullable=True)
    client_gst_url = Column(String(500), nullable=True)
    client_pan_url = Column(String(500), nullable=True)
    additional_documents = Column(JSON, nullable=False, default=list)

    # Verification
    verification_method = Column(String(50), nullable=False, default="manual_review")
    verified_at = Column(DateTime(timezone=True), nullable=True)
    verified_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    verification_notes = Column(Text, nullable=True)

    # Client confirmation
    client_contact_email = Column(String(255), nullable=True)
    client_contact_name = Column(String(255), nullable=True)
    client_contact_phone = Column(String(50), nullable=True)
    confirmation_allowed_emails = Column(JSON, nullable=False, default=list)
    client_verification_token = Column(String(255), nullable=True, index=True)
    client_verification_token_expiry = Column(DateTime(timezone=True), nullable=True)
    client_verification_action = Column(String(50), nullable=True)  # approved | rejected
    client_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    client_confirmed_by = Column(String(255), nullable=True)  # email, not a user id

    # Admin decisions
    admin_approved_at = Column(DateTime(timezone=True), nullable=True)
    admin_approved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    revocation_reason = Column(Text, nullable=True)
    expired_at = Column(DateTime(timezone=True), nullable=True)
    renewed_at = Column(DateTime(timezone=True), nullable=True)
    renewal_count = Column(Integer, nullable=False, default=0)

    # Usage tracking
    jobs_posted = Column(Integer, nullable=False, default=0)
    active_jobs_count = Column(Integer, nullable=False, default=0)
    total_applications = Column(Integer, nullable=False, default=0)
    last_job_posted_at = Column(DateTime(timezone=True), nullable=True)
    last_reminder_sent_at = Column(DateTime(timezone=True), nullable=True)

    # Notes
    internal_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Optimistic lock for lifecycle writes (counter updates bypass it)
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    agency_company = relationship("Company", foreign_keys=[agency_company_id])
    client_company = relationship("Company", foreign_keys=[client_company_id])

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_agency_auth_status"),
        CheckConstraint(
            "contract_start_date IS NULL OR contract_end_date IS NULL "
            "OR contract_start_date <= contract_end_date",
            name="ck_agency_auth_contract_window",
        ),
        CheckConstraint("max_active_jobs IS NULL OR max_active_jobs >= 0", name="ck_agency_auth_max_jobs"),
        # At most one open authorization per (agency, client)
        Index(
            "uq_agency_client_open",
            "agency_company_id",
            "client_company_id",
            unique=True,
            sqlite_where=_OPEN_PAIR_WHERE,
            postgresql_where=_OPEN_PAIR_WHERE,
        ),
    )

    @property
    def status_enum(self) -> AuthorizationStatus:
        return AuthorizationStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status_enum in TERMINAL_STATUSES

    def __repr__(self):
        return (
            f"<AgencyClientAuthorization(id={self.id}, agency={self.agency_company_id}, "
            f"client={self.client_company_id}, status='{self.status}')>"
        )
