"""User ORM model for members and administrators."""

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from esusu.models import Base, BaseModel


class User(Base, BaseModel):
    """
    Person taking part in contribution cycles.

    Identity and sessions are managed outside the ledger; this table only keeps
    what the ledger needs: contact details for reports and the persisted
    administrator flag that every privileged operation re-checks.
    """

    __tablename__ = "users"

    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Full name shown on reports",
    )
    phone: Mapped[str | None] = mapped_column(
        String(32), nullable=True, comment="Contact phone number"
    )
    email: Mapped[str | None] = mapped_column(
        String(255), nullable=True, index=True, comment="Contact email"
    )
    is_administrator: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Can manage cycles, verify payments and process payouts",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Suspended users keep their history but cannot act",
    )

    __table_args__ = (Index("idx_users_admin_active", "is_administrator", "is_active"),)

    # Relationships
    participations: Mapped[list["Participation"]] = relationship(  # noqa: F821
        "Participation",
        back_populates="user",
    )

    def __repr__(self) -> str:
        return (
            f"<User(id={self.id}, full_name={self.full_name}, "
            f"is_administrator={self.is_administrator}, is_active={self.is_active})>"
        )


__all__ = ["User"]
