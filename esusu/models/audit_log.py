"""Audit trail ORM model."""

from typing import Any

from sqlalchemy import JSON, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from esusu.models import Base, BaseModel


class AuditLog(Base, BaseModel):
    """One administrative action on a ledger entity.

    Written in the same transaction as the change, so the trail never shows
    an action that was rolled back.
    """

    __tablename__ = "audit_logs"

    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    """"cycle", "payment", "payout", "opt_out_request" or "settings"."""

    entity_id: Mapped[int] = mapped_column(nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    """"create", "update", "close", "verify", "process", "approve", ..."""

    actor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    """Administrator who acted. None for system actions."""

    changes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    """Snapshot of the fields involved, e.g. {"reference": "TRX-001"}."""

    __table_args__ = (Index("ix_audit_logs_entity", "entity_type", "entity_id"),)

    def __repr__(self) -> str:
        return (
            f"<AuditLog(id={self.id}, {self.entity_type}#{self.entity_id} {self.action} "
            f"by={self.actor_id})>"
        )


__all__ = ["AuditLog"]
