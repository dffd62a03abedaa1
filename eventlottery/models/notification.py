from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, false, select
from sqlalchemy.orm import Mapped, Session, mapped_column

from ..db.utils import dt_iso
from .base import Base, ID_TYPE


class Notification(Base):
    """Append-only message addressed to one entrant.

    Only the ``read`` flag changes after creation.
    """

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    recipient_id: Mapped[str] = mapped_column(String(128), nullable=False)
    event_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("events.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
    )

    def __init__(
        self,
        *,
        recipient_id: str,
        type: str,
        title: str,
        message: str,
        event_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.recipient_id = recipient_id
        self.event_id = event_id
        self.type = type
        self.title = title
        self.message = message
        self.read = False
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<Notification(id={self.id}, recipient_id='{self.recipient_id}', "
            f"type={self.type}, read={self.read})>"
        )

    @classmethod
    def for_recipient(
        cls, session: Session, recipient_id: str, *, unread_only: bool = False
    ) -> list["Notification"]:
        """Return the recipient's notifications, newest first."""

        stmt = select(cls).where(cls.recipient_id == recipient_id)
        if unread_only:
            stmt = stmt.where(cls.read.is_(False))
        stmt = stmt.order_by(cls.created_at.desc(), cls.id.desc())
        return list(session.scalars(stmt).all())

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "recipient_id": self.recipient_id,
            "event_id": self.event_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "read": self.read,
            "created_at": dt_iso(self.created_at),
        }


__all__ = ["Notification"]
