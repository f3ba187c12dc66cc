# storefront/audit.py
import logging

from storefront.db.database import SessionLocal
from storefront.db.models import AuditLog

logger = logging.getLogger(__name__)


async def write_audit(user_id, action: str, table_name: str, record_id=None, changes=None):
    """Record an audit entry in its own session.

    Runs after the caller's transaction has committed, so a failure here
    can't undo the business change. Errors are logged, never raised.
    """
    try:
        async with SessionLocal() as session:
            session.add(AuditLog(
                user_id=user_id,
                action=action,
                table_name=table_name,
                record_id=str(record_id) if record_id is not None else None,
                changes=changes,
            ))
            await session.commit()
    except Exception as e:
        logger.warning("Failed to write audit log: %s", e)
        logger.info("Audit fallback: %s on %s:%s by user %s", action, table_name, record_id, user_id)
