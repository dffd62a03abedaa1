from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, false, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from .base import Base, ID_TYPE


class EntrantProfile(Base):
    """Local projection of an entrant owned by the identity service.

    Only the fields the engine needs are kept here; an entrant without a
    profile row is treated as opted in to notifications.
    """

    def __init__(
        self,
        entrant_id: str,
        display_name: Optional[str] = None,
        notification_opt_out: bool = False,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        """Create a new :class:`EntrantProfile` record.

        Parameters
        ----------
        entrant_id : str
            Entrant's ID in the identity service.
        display_name : str, optional
            Name shown to organizers.
        notification_opt_out : bool, default: False
            When ``True`` the dispatcher suppresses every notification.
        created_at : datetime, optional
            Explicit creation timestamp.
        updated_at : datetime, optional
            Explicit last update timestamp.
        """

        self.entrant_id = entrant_id
        self.display_name = display_name
        self.notification_opt_out = notification_opt_out
        if created_at is not None:
            self.created_at = created_at
        if updated_at is not None:
            self.updated_at = updated_at

    __tablename__ = "entrant_profiles"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    entrant_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notification_opt_out: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return (
            f"<EntrantProfile(id={self.id}, entrant_id='{self.entrant_id}', "
            f"notification_opt_out={self.notification_opt_out})>"
        )

    @classmethod
    def get_by_entrant_id(
        cls, session: Session, entrant_id: str
    ) -> Optional["EntrantProfile"]:
        """Retrieve a profile by the entrant's external id."""

        return session.scalar(select(cls).where(cls.entrant_id == entrant_id))

    @classmethod
    def is_opted_out(cls, session: Session, entrant_id: str) -> bool:
        """Return the entrant's opt-out flag; unknown entrants are opted in."""

        flag = session.scalar(
            select(cls.notification_opt_out).where(cls.entrant_id == entrant_id)
        )
        return bool(flag)


__all__ = ["EntrantProfile"]
