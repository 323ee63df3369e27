"""
SQLAlchemy models for reservations and processed inbound messages.

Reservations are never physically deleted: cancelling flips ``status``.
``processed_messages`` carries a uniqueness constraint on
(tenant_id, provider, message_id) that backs the idempotency guard.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, Text, UniqueConstraint

from tablebot.schemas.booking_schema import ReservationStatus
from tablebot.storage.database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    """Naive UTC timestamp for audit columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Reservation(Base):
    """
    A table reservation.

    Attributes:
        start_at / end_at: naive tenant-local datetimes, ``end_at`` is
            ``start_at`` plus the tenant's table duration.
        status: one of ReservationStatus values.
        message_id: inbound message that created the reservation, if any.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        Index("ix_reservations_tenant_window", "tenant_id", "start_at", "end_at"),
    )

    id = Column(String(32), primary_key=True, default=_new_id)
    tenant_id = Column(String, nullable=False, index=True)
    customer_phone = Column(String, nullable=False, index=True)
    customer_name = Column(String, nullable=False)
    party_size = Column(Integer, nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)
    status = Column(String(16), nullable=False, default=ReservationStatus.CONFIRMED.value)
    notes = Column(Text, nullable=True)
    source = Column(String(32), nullable=False, default="whatsapp")
    message_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class ProcessedMessage(Base):
    """One accepted inbound message; a second insert of the same key fails."""

    __tablename__ = "processed_messages"
    __table_args__ = (
        UniqueConstraint("tenant_id", "provider", "message_id", name="uq_processed_message"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String, nullable=False)
    provider = Column(String(32), nullable=False)
    message_id = Column(String, nullable=False)
    created_at = Column(DateTime, default=_utcnow)
