from fastapi import Depends
from app.services.authorization_lifecycle import AuthorizationLifecycleManager
from app.services.authorization_service import AuthorizationService
from app.services.job_attribution import JobAttributionResolver
from app.services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher
from app.services.verification_service import RegistryClient, VerificationService, get_registry_client


def get_lifecycle_manager(
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    registry: RegistryClient = Depends(get_registry_client),
) -> AuthorizationLifecycleManager:
    """Lifecycle manager wired with the configured dispatcher and registry."""
    return AuthorizationLifecycleManager(
        dispatcher=dispatcher,
        verification=VerificationService(registry),
    )


def get_authorization_service(
    manager: AuthorizationLifecycleManager = Depends(get_lifecycle_manager),
) -> AuthorizationService:
    return AuthorizationService(manager)


def get_job_resolver(
    manager: AuthorizationLifecycleManager = Depends(get_lifecycle_manager),
) -> JobAttributionResolver:
    return JobAttributionResolver(manager)
