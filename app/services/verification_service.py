"""
Verification service for agency-client authorization requests.

Decides, per verification method, whether a request may move toward `active`
without an admin. The decision is fail-closed: anything short of a clear
registry match ends in manual review.
"""
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from app.core import config
from app.core.authorization_states import VerificationMethod
from app.core.errors import ErrorCode
from app.db.models.agency_authorization import AgencyClientAuthorization
from app.db.models.company import Company

logger = logging.getLogger(__name__)

REASON_REGISTRY_MATCH = "registry_match"
REASON_NEEDS_MANUAL_REVIEW = "needs_manual_review"
REASON_MANUAL_REVIEW_REQUIRED = "manual_review_required"

GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")

# Legal-form words ignored when comparing company names
_NAME_NOISE = {"pvt", "private", "ltd", "limited", "llp", "inc", "co", "company", "the"}


class RegistryUnavailableError(Exception):
    """Registry could not answer (network fault, timeout, bad payload, not configured)."""


@dataclass
class RegistryRecord:
    """A GST registration as reported by the registry."""
    gstin: str
    legal_name: str
    status: str
    trade_name: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return (self.status or "").strip().lower() == "active"


class RegistryClient(ABC):
    """Abstract base class for tax registry lookups."""

    @abstractmethod
    def lookup(self, gstin: str) -> Optional[RegistryRecord]:
        """
        Look up a GSTIN.

        Returns:
            The registration, or None when the registry has no such GSTIN

        Raises:
            RegistryUnavailableError: the registry could not give an answer
        """
        pass


class UnconfiguredRegistryClient(RegistryClient):
    """Used when no registry URL is configured; every lookup is inconclusive."""

    def lookup(self, gstin: str) -> Optional[RegistryRecord]:
        raise RegistryUnavailableError("GST registry not configured")


class HttpGstRegistryClient(RegistryClient):
    """GST registry over HTTP: GET {base_url}/gstin/{gstin}."""

    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 10.0,
                 client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.headers = {"Accept": "application/json"}
        if api_key:
            self.headers["Authorization"] = f"Bearer {api_key}"
        self.timeout = timeout
        self._client = client

    def _get(self, url: str) -> httpx.Response:
        if self._client is not None:
            return self._client.get(url, headers=self.headers)
        with httpx.Client(timeout=self.timeout) as client:
            return client.get(url, headers=self.headers)

    def lookup(self, gstin: str) -> Optional[RegistryRecord]:
        try:
            response = self._get(f"{self.base_url}/gstin/{gstin}")
            if response.status_code == 404:
                return None
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise RegistryUnavailableError(f"GST registry lookup failed: {e}") from e

        try:
            gstin_value, legal_name, status = payload["gstin"], payload["legal_name"], payload["status"]
            trade_name = payload.get("trade_name")
        except (KeyError, TypeError, AttributeError) as e:
            raise RegistryUnavailableError(f"Malformed registry payload: missing {e}") from e

        if not all(isinstance(value, str) for value in (gstin_value, legal_name, status)):
            raise RegistryUnavailableError("Malformed registry payload: gstin, legal_name and status must be strings")
        if trade_name is not None and not isinstance(trade_name, str):
            raise RegistryUnavailableError("Malformed registry payload: trade_name must be a string")
        return RegistryRecord(gstin=gstin_value, legal_name=legal_name, status=status, trade_name=trade_name)


def get_registry_client() -> RegistryClient:
    """Registry client selected from configuration (FastAPI dependency)."""
    if config.GST_REGISTRY_URL:
        return HttpGstRegistryClient(
            base_url=config.GST_REGISTRY_URL,
            api_key=config.GST_REGISTRY_API_KEY,
            timeout=config.GST_REGISTRY_TIMEOUT_SECONDS,
        )
    return UnconfiguredRegistryClient()


@dataclass
class VerificationOutcome:
    """What the lifecycle manager should do with a submitted request."""
    method: VerificationMethod
    auto_approve: bool
    reason: str
    detail: str = ""
    requires_client_confirmation: bool = True
    error_code: Optional[ErrorCode] = None


def normalize_company_name(name: Optional[str]) -> str:
    words = re.sub(r"[^a-z0-9 ]+", " ", (name or "").lower()).split()
    return " ".join(word for word in words if word not in _NAME_NOISE)


def names_match(company_name: str, registration: RegistryRecord) -> bool:
    expected = normalize_company_name(company_name)
    if not expected:
        return False
    candidates = [registration.legal_name, registration.trade_name]
    return any(normalize_company_name(candidate) == expected for candidate in candidates if candidate)


class VerificationService:
    """
    Evaluates authorization requests against their verification method.

    Pure with respect to the record: it reads the record and the client
    company and returns an outcome; the lifecycle manager applies it.
    """

    def __init__(self, registry: Optional[RegistryClient] = None):
        self.registry = registry or UnconfiguredRegistryClient()

    def evaluate(self, record: AgencyClientAuthorization, client_company: Optional[Company]) -> VerificationOutcome:
        try:
            method = VerificationMethod(record.verification_method)
        except ValueError:
            logger.warning(
                f"Unknown verification method, falling back to manual review: "
                f"authorization_id={record.id}, method={record.verification_method}"
            )
            return self._manual(VerificationMethod.MANUAL_REVIEW, f"unknown method {record.verification_method!r}")

        if method == VerificationMethod.MANUAL_REVIEW:
            return VerificationOutcome(
                method=method,
                auto_approve=False,
                reason=REASON_MANUAL_REVIEW_REQUIRED,
                detail="manual review selected",
            )

        try:
            return self._check_registry(record, client_company, method)
        except Exception as e:
            # Anything unexpected from the registry path is inconclusive, never an approval
            logger.error(f"Verification failed: authorization_id={record.id}, error={e}", exc_info=True)
            return self._manual(method, f"verification error: {e}", error_code=ErrorCode.VERIFICATION_INCONCLUSIVE)

    def _manual(self, method: VerificationMethod, detail: str,
                error_code: Optional[ErrorCode] = None) -> VerificationOutcome:
        return VerificationOutcome(
            method=method,
            auto_approve=False,
            reason=REASON_NEEDS_MANUAL_REVIEW,
            detail=detail,
            error_code=error_code,
        )

    def _check_registry(self, record: AgencyClientAuthorization, client_company: Optional[Company],
                        method: VerificationMethod) -> VerificationOutcome:
        if client_company is None:
            return self._manual(method, "client company not found")

        gstin = (client_company.gst_number or "").strip().upper()
        if not gstin:
            return self._manual(method, "client company has no GSTIN")
        if not GSTIN_PATTERN.match(gstin):
            return self._manual(method, "client GSTIN has an invalid format")

        try:
            registration = self.registry.lookup(gstin)
        except RegistryUnavailableError as e:
            logger.warning(f"GST registry inconclusive: authorization_id={record.id}, error={e}")
            return self._manual(method, str(e), error_code=ErrorCode.VERIFICATION_INCONCLUSIVE)
        except httpx.HTTPError as e:
            logger.warning(f"GST registry transport error: authorization_id={record.id}, error={e}")
            return self._manual(method, f"registry transport error: {e}", error_code=ErrorCode.VERIFICATION_INCONCLUSIVE)

        if registration is None:
            return self._manual(method, "GSTIN not found in registry")
        if registration.gstin.strip().upper() != gstin:
            return self._manual(method, "registry returned a different GSTIN")
        if not registration.is_active:
            return self._manual(method, f"GST registration status is {registration.status}")

        # Hybrid leans on the client's own confirmation, so an active GSTIN is enough
        if method == VerificationMethod.AUTOMATED_GST and not names_match(client_company.name, registration):
            return self._manual(method, "registered name does not match client company")

        logger.info(f"GST registry match: authorization_id={record.id}, method={method.value}")
        return VerificationOutcome(
            method=method,
            auto_approve=True,
            reason=REASON_REGISTRY_MATCH,
            detail=f"GSTIN {gstin} active in registry",
            requires_client_confirmation=True,
        )
