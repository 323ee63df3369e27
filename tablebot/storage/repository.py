"""
Reservation storage: CRUD over reservations plus the processed-message log.

Every method opens its own short transaction and returns detached
ReservationView snapshots, so callers never hold ORM objects across an
``await``. Capacity-guarded writes sum the overlapping covers and insert (or
update) inside one transaction; within one process there is no suspension
point between the two, which keeps two customers from both taking the last
seats.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from tablebot.scheduling.availability import Occupancy
from tablebot.schemas.booking_schema import ACTIVE_STATUSES, ReservationStatus, ReservationView
from tablebot.storage.models import ProcessedMessage, Reservation

logger = logging.getLogger(__name__)

_ACTIVE = [s.value for s in ACTIVE_STATUSES]


class StorageError(Exception):
    """Raised when the store cannot complete an operation."""


class DuplicateMessageError(StorageError):
    """Raised when an inbound message id was already recorded for the tenant."""


class ReservationNotFoundError(StorageError):
    """Raised when a reservation id does not exist for the tenant."""


class CapacityExceededError(StorageError):
    """Raised when a write would push overlapping covers above capacity."""


def _overlapping(tenant_id: str, start_at: datetime, end_at: datetime, exclude_id: Optional[str]):
    conditions = [
        Reservation.tenant_id == tenant_id,
        Reservation.status.in_(_ACTIVE),
        Reservation.start_at < end_at,
        Reservation.end_at > start_at,
    ]
    if exclude_id is not None:
        conditions.append(Reservation.id != exclude_id)
    return conditions


class ReservationRepository:
    """Reservation and idempotency persistence behind a session factory."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------ #
    # Idempotency log
    # ------------------------------------------------------------------ #

    def record_processed_message(self, tenant_id: str, provider: str, message_id: str) -> None:
        """Insert the message key; raises DuplicateMessageError when already present."""
        try:
            with self._session_factory.begin() as db:
                db.add(ProcessedMessage(tenant_id=tenant_id, provider=provider, message_id=message_id))
        except IntegrityError:
            raise DuplicateMessageError(
                f"Message {provider}:{message_id} already processed for tenant {tenant_id}"
            ) from None
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not record message {message_id}: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_reservation(
        self, tenant_id: str, reservation_id: str, phone: Optional[str] = None
    ) -> Optional[ReservationView]:
        """Fetch a reservation of the tenant, optionally scoped to one customer."""
        query = select(Reservation).where(
            Reservation.tenant_id == tenant_id, Reservation.id == reservation_id
        )
        if phone is not None:
            query = query.where(Reservation.customer_phone == phone)
        with self._session_factory() as db:
            row = db.scalars(query).first()
            return ReservationView.model_validate(row) if row else None

    def list_upcoming(self, tenant_id: str, phone: str, now: datetime) -> list[ReservationView]:
        """Confirmed reservations of a customer starting at or after ``now``, earliest first."""
        query = (
            select(Reservation)
            .where(
                Reservation.tenant_id == tenant_id,
                Reservation.customer_phone == phone,
                Reservation.status == ReservationStatus.CONFIRMED.value,
                Reservation.start_at >= now,
            )
            .order_by(Reservation.start_at.asc())
        )
        with self._session_factory() as db:
            return [ReservationView.model_validate(row) for row in db.scalars(query)]

    def has_overlap_for_customer(
        self,
        tenant_id: str,
        phone: str,
        start_at: datetime,
        end_at: datetime,
        exclude_id: Optional[str] = None,
    ) -> bool:
        """True when the customer already holds an active reservation intersecting the interval."""
        query = select(func.count(Reservation.id)).where(
            Reservation.customer_phone == phone,
            *_overlapping(tenant_id, start_at, end_at, exclude_id),
        )
        with self._session_factory() as db:
            return (db.scalar(query) or 0) > 0

    def occupancy_between(
        self,
        tenant_id: str,
        start_at: datetime,
        end_at: datetime,
        exclude_id: Optional[str] = None,
    ) -> list[Occupancy]:
        """Active reservations intersecting ``[start_at, end_at)`` as occupancy records."""
        query = select(Reservation.start_at, Reservation.end_at, Reservation.party_size).where(
            *_overlapping(tenant_id, start_at, end_at, exclude_id)
        )
        with self._session_factory() as db:
            return [
                Occupancy(start_at=row.start_at, end_at=row.end_at, party_size=row.party_size)
                for row in db.execute(query)
            ]

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    @staticmethod
    def _check_capacity(
        db: Session,
        tenant_id: str,
        start_at: datetime,
        end_at: datetime,
        party_size: int,
        capacity: int,
        exclude_id: Optional[str] = None,
    ) -> None:
        in_use = db.scalar(
            select(func.coalesce(func.sum(Reservation.party_size), 0)).where(
                *_overlapping(tenant_id, start_at, end_at, exclude_id)
            )
        ) or 0
        if in_use + party_size > capacity:
            raise CapacityExceededError(
                f"{in_use} covers booked + {party_size} requested exceeds capacity {capacity}"
            )

    def create_reservation(
        self,
        tenant_id: str,
        phone: str,
        name: str,
        party_size: int,
        start_at: datetime,
        end_at: datetime,
        notes: Optional[str] = None,
        message_id: Optional[str] = None,
        source: str = "whatsapp",
        status: ReservationStatus = ReservationStatus.CONFIRMED,
        capacity: Optional[int] = None,
    ) -> ReservationView:
        """Insert a reservation, rechecking capacity in the same transaction when given."""
        try:
            with self._session_factory.begin() as db:
                if capacity is not None:
                    self._check_capacity(db, tenant_id, start_at, end_at, party_size, capacity)
                row = Reservation(
                    tenant_id=tenant_id,
                    customer_phone=phone,
                    customer_name=name,
                    party_size=party_size,
                    start_at=start_at,
                    end_at=end_at,
                    status=status.value,
                    notes=notes,
                    source=source,
                    message_id=message_id,
                )
                db.add(row)
                db.flush()
                view = ReservationView.model_validate(row)
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not create reservation: {exc}") from exc
        logger.info(
            "Reservation created: %s for %s on %s (%d covers)",
            view.id, name, start_at.isoformat(timespec="minutes"), party_size,
        )
        return view

    def update_reservation(
        self,
        tenant_id: str,
        reservation_id: str,
        start_at: datetime,
        end_at: datetime,
        party_size: int,
        notes: Optional[str] = None,
        capacity: Optional[int] = None,
    ) -> ReservationView:
        """Move and/or resize a reservation; its own covers are excluded from the capacity sum."""
        try:
            with self._session_factory.begin() as db:
                row = db.get(Reservation, reservation_id)
                if row is None or row.tenant_id != tenant_id:
                    raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
                if capacity is not None:
                    self._check_capacity(
                        db, tenant_id, start_at, end_at, party_size, capacity,
                        exclude_id=reservation_id,
                    )
                row.start_at = start_at
                row.end_at = end_at
                row.party_size = party_size
                row.notes = notes
                db.flush()
                view = ReservationView.model_validate(row)
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not update reservation {reservation_id}: {exc}") from exc
        logger.info("Reservation updated: %s to %s", reservation_id, start_at.isoformat(timespec="minutes"))
        return view

    def cancel_reservation(self, tenant_id: str, reservation_id: str) -> ReservationView:
        """Mark a reservation cancelled; the row is kept."""
        try:
            with self._session_factory.begin() as db:
                row = db.get(Reservation, reservation_id)
                if row is None or row.tenant_id != tenant_id:
                    raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
                row.status = ReservationStatus.CANCELLED.value
                db.flush()
                view = ReservationView.model_validate(row)
        except SQLAlchemyError as exc:
            raise StorageError(f"Could not cancel reservation {reservation_id}: {exc}") from exc
        logger.info("Reservation cancelled: %s", reservation_id)
        return view
