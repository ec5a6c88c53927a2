"""Authorization helpers for privileged ledger operations.

The presentation layer may claim a user is an administrator; the ledger never
trusts that claim and re-reads the persisted user before acting.
"""

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from esusu.models.user import User
from esusu.services.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def verify_admin(db: Session, user_id: int | None) -> bool:
    """Check persisted administrator status.

    Args:
        db: Database session
        user_id: User claiming admin rights

    Returns:
        True if the user exists, is active and is an administrator
    """
    if user_id is None:
        return False
    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    return bool(user and user.is_active and user.is_administrator)


def require_admin(db: Session, user_id: int | None) -> None:
    """Raise UnauthorizedError unless user_id is an active administrator."""
    if not verify_admin(db, user_id):
        logger.warning("Admin check failed for user %s", user_id)
        raise UnauthorizedError()


__all__ = ["verify_admin", "require_admin"]
