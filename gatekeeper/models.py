from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    UniqueConstraint,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


class Event(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    uuid: Mapped[str] = mapped_column(String(36), unique=True, index=True)
    name: Mapped[str] = mapped_column(String)
    # seconds a freshly issued nonce may be signed in
    nonce_valid_for: Mapped[int | None] = mapped_column(Integer, nullable=True, default=900)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Ticket(Base):
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id"), index=True)
    policy_id: Mapped[str] = mapped_column(String)
    asset_id: Mapped[str] = mapped_column(String, index=True)
    stake_key: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    signature_nonce: Mapped[bytes] = mapped_column(LargeBinary(16), unique=True)
    signature: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    ticket_nonce: Mapped[bytes | None] = mapped_column(LargeBinary(16), unique=True, nullable=True)

    is_checked_in: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())
    check_in_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_in_user: Mapped[str | None] = mapped_column(String, nullable=True)

    event: Mapped[Event] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint("event_id", "policy_id", "asset_id", "stake_key", name="uniq_ticket_natural_key"),
        Index("ix_tickets_asset_ticket_nonce", "asset_id", "ticket_nonce"),
    )

    @property
    def state(self) -> str:
        if self.is_checked_in:
            return "checked_in"
        if self.ticket_nonce is not None:
            return "nonce_minted"
        return "created"


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    decision_id: Mapped[str] = mapped_column(String, index=True)
    ip: Mapped[str] = mapped_column(String)
    user_agent: Mapped[str] = mapped_column(String)
    gate_user: Mapped[str | None] = mapped_column(String, nullable=True)
    event_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    asset_id: Mapped[str | None] = mapped_column(String, index=True, nullable=True)
    status: Mapped[str] = mapped_column(String)
    reason_code: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
