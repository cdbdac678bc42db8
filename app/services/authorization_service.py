"""
AuthorizationService: the external contract of the authorization core.

Validates requests, creates records through the repository and delegates
every status change to the lifecycle manager. Routes and scripts talk to
this class only.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.authorization_states import STATUS_GROUPS, VerificationMethod, parse_status
from app.core.errors import ErrorCode, ServiceResult
from app.db.models.agency_authorization import AgencyClientAuthorization
from app.db.models.company import Company
from app.db.models.user import User
from app.services import authorization_repository as repository
from app.services.authorization_lifecycle import AuthorizationLifecycleManager

logger = logging.getLogger(__name__)

# Fields an agency may set when requesting an authorization
REQUEST_FIELDS = (
    "contract_start_date", "contract_end_date", "auto_renew",
    "can_post_jobs", "can_edit_jobs", "can_delete_jobs", "can_view_applications",
    "max_active_jobs", "job_categories", "allowed_locations",
    "authorization_letter_url", "service_agreement_url", "client_gst_url", "client_pan_url",
    "additional_documents", "verification_method",
    "client_contact_email", "client_contact_name", "client_contact_phone",
    "confirmation_allowed_emails", "internal_notes",
)

COUNTER_FIELDS = ("jobs_posted", "active_jobs_count", "total_applications")


def _clean_list(values) -> List[str]:
    return [value.strip() for value in (values or []) if value and value.strip()]


class AuthorizationService:
    def __init__(self, manager: Optional[AuthorizationLifecycleManager] = None):
        self.manager = manager or AuthorizationLifecycleManager()

    def _validate_request(self, db: Session, agency_id: int, client_id: int, fields: Dict[str, Any]) -> Optional[ServiceResult]:
        def malformed(message: str) -> ServiceResult:
            return ServiceResult.failure(ErrorCode.MALFORMED_REQUEST, message)

        if agency_id == client_id:
            return malformed("Agency and client must be different companies")

        agency = db.query(Company).filter(Company.id == agency_id).first()
        if agency is None:
            return malformed("Agency company not found")
        if not agency.is_agency:
            return malformed("Only recruiting agencies and consulting firms can request client authorizations")
        if db.query(Company).filter(Company.id == client_id).first() is None:
            return malformed("Client company not found")

        start, end = fields.get("contract_start_date"), fields.get("contract_end_date")
        if start and end and start > end:
            return malformed("Contract start date must not be after the end date")

        max_jobs = fields.get("max_active_jobs")
        if max_jobs is not None and max_jobs < 0:
            return malformed("max_active_jobs must be zero or more (omit it for unlimited)")

        method = fields.get("verification_method")
        if method is not None:
            try:
                VerificationMethod(method)
            except ValueError:
                return malformed(f"Unknown verification method '{method}'")
        return None

    def request(
        self,
        db: Session,
        agency_company_id: int,
        client_company_id: int,
        requested_by: Optional[User] = None,
        now: Optional[datetime] = None,
        **fields,
    ) -> ServiceResult[AgencyClientAuthorization]:
        """
        Create an authorization request in `pending` and submit it for verification.

        Returns:
            ServiceResult with the record in pending_client_confirm or
            pending_admin_review, or MALFORMED_REQUEST / DUPLICATE_AUTHORIZATION
        """
        unknown = set(fields) - set(REQUEST_FIELDS)
        if unknown:
            return ServiceResult.failure(ErrorCode.MALFORMED_REQUEST, f"Unknown fields: {', '.join(sorted(unknown))}")

        invalid = self._validate_request(db, agency_company_id, client_company_id, fields)
        if invalid is not None:
            return invalid

        values = {key: value for key, value in fields.items() if value is not None}
        for key in ("job_categories", "allowed_locations", "additional_documents"):
            if key in values:
                values[key] = _clean_list(values[key])
        if "confirmation_allowed_emails" in values:
            values["confirmation_allowed_emails"] = [email.lower() for email in _clean_list(values["confirmation_allowed_emails"])]
        if "verification_method" in values:
            values["verification_method"] = VerificationMethod(values["verification_method"]).value

        created = repository.create(
            db,
            agency_company_id=agency_company_id,
            client_company_id=client_company_id,
            **values,
        )
        if not created.ok:
            return created

        record = created.value
        logger.info(
            f"Authorization requested: authorization_id={record.id}, agency_id={agency_company_id}, "
            f"client_id={client_company_id}, method={record.verification_method}, "
            f"requested_by={requested_by.id if requested_by else None}"
        )
        return self.manager.submit(db, record, now=now)

    def _load(self, db: Session, authorization_id: int, now: Optional[datetime] = None) -> ServiceResult[AgencyClientAuthorization]:
        record = self.manager.get(db, authorization_id, now)
        if record is None:
            return ServiceResult.failure(
                ErrorCode.NOT_FOUND,
                "Authorization not found",
                authorization_id=authorization_id,
            )
        return ServiceResult.success(record)

    def confirm_by_client(self, db: Session, authorization_id: int, email: str, token: Optional[str] = None,
                          now: Optional[datetime] = None) -> ServiceResult[AgencyClientAuthorization]:
        loaded = self._load(db, authorization_id, now)
        if not loaded.ok:
            return loaded
        return self.manager.confirm_by_client(db, loaded.value, email, token=token, now=now)

    def decline_by_client(self, db: Session, authorization_id: int, email: str, token: Optional[str] = None,
                          reason: Optional[str] = None, now: Optional[datetime] = None) -> ServiceResult[AgencyClientAuthorization]:
        loaded = self._load(db, authorization_id, now)
        if not loaded.ok:
            return loaded
        return self.manager.decline_by_client(db, loaded.value, email, token=token, reason=reason, now=now)

    def admin_decide(self, db: Session, authorization_id: int, approve: bool, admin: User,
                     reason: Optional[str] = None, now: Optional[datetime] = None) -> ServiceResult[AgencyClientAuthorization]:
        loaded = self._load(db, authorization_id, now)
        if not loaded.ok:
            return loaded
        return self.manager.admin_decide(db, loaded.value, approve, admin, reason=reason, now=now)

    def revoke(self, db: Session, authorization_id: int, actor: User, reason: Optional[str],
               now: Optional[datetime] = None) -> ServiceResult[AgencyClientAuthorization]:
        loaded = self._load(db, authorization_id, now)
        if not loaded.ok:
            return loaded
        return self.manager.revoke(db, loaded.value, actor, reason, now=now)

    def get(self, db: Session, authorization_id: int, now: Optional[datetime] = None) -> Optional[AgencyClientAuthorization]:
        return self.manager.get(db, authorization_id, now)

    def find_active(self, db: Session, agency_company_id: int, client_company_id: int,
                    now: Optional[datetime] = None) -> Optional[AgencyClientAuthorization]:
        return self.manager.find_active(db, agency_company_id, client_company_id, now)

    def _refresh_all(self, db: Session, records: List[AgencyClientAuthorization], now: Optional[datetime]):
        for record in records:
            self.manager.refresh(db, record, now)
        return records

    def list_by_agency(self, db: Session, agency_company_id: int, status: Optional[str] = None,
                       now: Optional[datetime] = None) -> List[AgencyClientAuthorization]:
        records = self._refresh_all(db, repository.list_by_agency(db, agency_company_id), now)
        return [record for record in records if status is None or record.status == status]

    def list_by_client(self, db: Session, client_company_id: int, status: Optional[str] = None,
                       now: Optional[datetime] = None) -> List[AgencyClientAuthorization]:
        records = self._refresh_all(db, repository.list_by_client(db, client_company_id), now)
        return [record for record in records if status is None or record.status == status]

    def list_for_admin(self, db: Session, status_group: Optional[str] = None, limit: int = 20, offset: int = 0,
                       now: Optional[datetime] = None) -> ServiceResult[List[AgencyClientAuthorization]]:
        """Admin dashboard listing; status_group is one of pending/active/ended/rejected (or a single status)."""
        statuses = None
        if status_group:
            if status_group in STATUS_GROUPS:
                statuses = [status.value for status in STATUS_GROUPS[status_group]]
            else:
                try:
                    statuses = [parse_status(status_group).value]
                except ValueError:
                    return ServiceResult.failure(ErrorCode.MALFORMED_REQUEST, f"Unknown status filter '{status_group}'")
        records = repository.list_by_status(db, statuses, limit=limit, offset=offset)
        return ServiceResult.success(self._refresh_all(db, records, now))

    def stats(self, db: Session) -> Dict[str, Any]:
        counts = repository.count_by_status(db)
        groups = {
            name: sum(counts[status.value] for status in members)
            for name, members in STATUS_GROUPS.items()
        }
        return {"total": sum(counts.values()), "by_status": counts, "by_group": groups}

    def adjust_counters(self, db: Session, authorization_id: int, admin: User, reason: Optional[str],
                        now: Optional[datetime] = None, **counters) -> ServiceResult[AgencyClientAuthorization]:
        """
        Admin corrective action on usage counters.

        jobs_posted and total_applications are monotonic, so they can only
        be raised; active_jobs_count can be set to any value >= 0.
        """
        if admin is None or not admin.is_admin:
            return ServiceResult.failure(ErrorCode.PERMISSION_DENIED, "Only platform admins can adjust counters")
        reason = (reason or "").strip()
        if not reason:
            return ServiceResult.failure(ErrorCode.MALFORMED_REQUEST, "Reason is required")
        unknown = set(counters) - set(COUNTER_FIELDS)
        if unknown:
            return ServiceResult.failure(ErrorCode.MALFORMED_REQUEST, f"Unknown counters: {', '.join(sorted(unknown))}")

        loaded = self._load(db, authorization_id, now)
        if not loaded.ok:
            return loaded
        record = loaded.value

        changes = {key: value for key, value in counters.items() if value is not None}
        for key, value in changes.items():
            if value < 0:
                return ServiceResult.failure(ErrorCode.MALFORMED_REQUEST, f"{key} must be zero or more")
            if key != "active_jobs_count" and value < getattr(record, key):
                return ServiceResult.failure(
                    ErrorCode.MALFORMED_REQUEST,
                    f"{key} can only be increased",
                    current=getattr(record, key),
                )

        before = {key: getattr(record, key) for key in changes}
        for key, value in changes.items():
            setattr(record, key, value)
        record.internal_notes = "\n".join(filter(None, [record.internal_notes, f"Counters adjusted: {reason}"]))
        repository.save(db, record)
        logger.info(
            f"Authorization counters adjusted: authorization_id={record.id}, admin_id={admin.id}, "
            f"before={before}, after={changes}"
        )
        return ServiceResult.success(record)

