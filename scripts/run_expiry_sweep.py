"""
Run the contract sweep once (expiry, renewal, confirmation timeouts, reminders).
Run: python -m scripts.run_expiry_sweep  (e.g. daily from cron)
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core import config
from app.core.logging_config import setup_logging
from app.db.session import SessionLocal
from app.services.authorization_lifecycle import AuthorizationLifecycleManager
from app.services.contract_expiry_service import run_expiry_sweep
from app.services.notification_dispatcher import get_notification_dispatcher
import logging

logger = logging.getLogger(__name__)


def main() -> int:
    setup_logging(config.LOG_LEVEL)
    db = SessionLocal()
    try:
        manager = AuthorizationLifecycleManager(dispatcher=get_notification_dispatcher())
        report = run_expiry_sweep(db, manager)
        logger.info(f"Sweep report: {report.to_dict()}")
        return 0
    except Exception as e:
        db.rollback()
        logger.error(f"Expiry sweep failed: {e}", exc_info=True)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
