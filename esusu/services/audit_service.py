"""Audit trail of administrative ledger changes."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from esusu.models.audit_log import AuditLog


def _json_safe(value):
    """Money, dates and enums as strings so the changes snapshot fits a JSON column."""
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, date, datetime)):
        return str(value)
    return value


class AuditService:
    """Write and read audit entries.

    Entries are added to the caller's session and never committed here, so an
    entry exists exactly when the change it describes was committed.
    """

    @staticmethod
    def log(
        db: Session,
        entity_type: str,
        entity_id: int,
        action: str,
        actor_id: int | None = None,
        changes: dict | None = None,
    ) -> AuditLog:
        """Record one administrative action.

        Args:
            db: Session of the enclosing ledger transaction
            entity_type: "cycle", "payment", "payout", "opt_out_request" or "settings"
            entity_id: Primary key of the entity
            action: What was done ("create", "close", "process", "approve", ...)
            actor_id: Administrator who did it
            changes: Snapshot of the relevant fields; Decimals and dates are stringified

        Returns:
            The pending AuditLog row
        """
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            changes=_json_safe(changes) if changes is not None else None,
        )
        db.add(entry)
        return entry

    @staticmethod
    def history(db: Session, entity_type: str, entity_id: int) -> list[AuditLog]:
        """Entries for one entity, oldest first."""
        return list(
            db.execute(
                select(AuditLog)
                .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
                .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
            )
            .scalars()
            .all()
        )


__all__ = ["AuditService"]
