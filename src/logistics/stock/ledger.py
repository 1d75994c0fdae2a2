"""InventoryLedger — the only writer of stock counters and reservations.

Every read-check-write on a StockRecord runs under a per-(product,
warehouse) lock, and the record and its reservation are persisted in one
unit of work. Callers get typed errors back synchronously; nothing here
talks to collaborators, so the locks are held only for the arithmetic and
the write.
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import timedelta

import structlog
from protean.core.unit_of_work import UnitOfWork
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from logistics.errors import OutOfStock, ReservationExpired, ReservationNotFound
from logistics.stock.stock import Reservation, ReservationStatus, StockRecord, stock_record_id
from logistics.utils.locking import KeyedLock
from logistics.utils.time import Clock, utc_now

logger = structlog.get_logger(__name__)

DEFAULT_RESERVATION_TTL = timedelta(hours=24)


class InventoryLedger:
    def __init__(
        self,
        locks: KeyedLock | None = None,
        clock: Clock = utc_now,
        reservation_ttl: timedelta = DEFAULT_RESERVATION_TTL,
    ):
        self.locks = locks if locks is not None else KeyedLock()
        self.clock = clock
        self.reservation_ttl = reservation_ttl

    # -------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------
    @staticmethod
    def _stock_repo():
        return current_domain.repository_for(StockRecord)

    @staticmethod
    def _reservation_repo():
        return current_domain.repository_for(Reservation)

    def stock_level(self, product_id: str, warehouse_id: str) -> StockRecord | None:
        try:
            return self._stock_repo().get(stock_record_id(product_id, warehouse_id))
        except ObjectNotFoundError:
            return None

    def stock_for_product(self, product_id: str) -> list[StockRecord]:
        return self._stock_repo().for_product(product_id)

    def total_available(self, product_id: str) -> int:
        return sum(record.available for record in self.stock_for_product(product_id))

    def get_reservation(self, reservation_id: str) -> Reservation:
        try:
            return self._reservation_repo().get(reservation_id)
        except ObjectNotFoundError:
            raise ReservationNotFound(f"Reservation {reservation_id} does not exist")

    def reservations_for_order(self, order_id: str, status: ReservationStatus | None = None) -> list[Reservation]:
        reservations = self._reservation_repo().for_order(order_id, status)
        return sorted(reservations, key=lambda r: (str(r.product_id), str(r.warehouse_id), str(r.id)))

    # -------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------
    def receive_stock(
        self,
        product_id: str,
        warehouse_id: str,
        quantity: int,
        reorder_level: int | None = None,
        reorder_quantity: int | None = None,
    ) -> StockRecord:
        now = self.clock()
        with self.locks.hold(stock_record_id(product_id, warehouse_id)):
            record = self.stock_level(product_id, warehouse_id)
            if record is None:
                record = StockRecord.open(product_id, warehouse_id, now, reorder_level, reorder_quantity)
            else:
                if reorder_level is not None:
                    record.reorder_level = reorder_level
                if reorder_quantity is not None:
                    record.reorder_quantity = reorder_quantity
            record.receive(quantity, now)
            self._stock_repo().add(record)

        logger.info(
            "Stock received",
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            available=record.available,
        )
        return record

    # -------------------------------------------------------------------
    # Reserve / release / commit
    # -------------------------------------------------------------------
    def reserve(
        self,
        product_id: str,
        warehouse_id: str,
        quantity: int,
        order_id: str,
        ttl: timedelta | None = None,
    ) -> Reservation:
        """Hold ``quantity`` units for ``order_id`` or raise OutOfStock."""
        return self.reserve_many([(product_id, warehouse_id, quantity)], order_id, ttl)[0]

    def reserve_many(
        self,
        lines: Iterable[tuple[str, str, int]],
        order_id: str,
        ttl: timedelta | None = None,
    ) -> list[Reservation]:
        """Hold every ``(product_id, warehouse_id, quantity)`` line for ``order_id``, all or none.

        The records are locked together and every line is checked before
        any counter moves, so a short line raises OutOfStock with nothing
        written. Records and reservations are stored in one unit of work.
        """
        lines = [(str(product_id), str(warehouse_id), quantity) for product_id, warehouse_id, quantity in lines]
        for _, _, quantity in lines:
            if quantity is None or quantity <= 0:
                raise ValidationError({"quantity": ["Quantity must be positive"]})
        if not lines:
            return []

        now = self.clock()
        expires_at = now + (ttl if ttl is not None else self.reservation_ttl)
        keys = [stock_record_id(product_id, warehouse_id) for product_id, warehouse_id, _ in lines]
        with self.locks.hold_many(keys):
            records: dict[str, StockRecord | None] = {}
            claimed: dict[str, int] = defaultdict(int)
            for (product_id, warehouse_id, quantity), key in zip(lines, keys):
                if key not in records:
                    records[key] = self.stock_level(product_id, warehouse_id)
                record = records[key]
                available = max((record.available if record else 0) - claimed[key], 0)
                if available < quantity:
                    raise OutOfStock(product_id, warehouse_id, quantity, available)
                claimed[key] += quantity

            reservations = []
            for (product_id, warehouse_id, quantity), key in zip(lines, keys):
                records[key].hold(quantity, now)
                reservations.append(Reservation.hold(order_id, product_id, warehouse_id, quantity, now, expires_at))
            self._persist(*records.values(), *reservations)

        for reservation, key in zip(reservations, keys):
            logger.info(
                "Stock reserved",
                reservation_id=str(reservation.id),
                order_id=order_id,
                product_id=str(reservation.product_id),
                warehouse_id=str(reservation.warehouse_id),
                quantity=reservation.quantity,
                available=records[key].available,
            )
        return reservations

    def release(self, reservation_id: str) -> Reservation:
        """Return a held reservation's units to available. A no-op unless HELD."""
        reservation = self.get_reservation(reservation_id)
        with self.locks.hold(reservation.stock_key):
            reservation = self.get_reservation(reservation_id)
            if not reservation.is_held():
                return reservation
            now = self.clock()
            record = self._require_record(reservation)
            record.release(reservation.quantity, now)
            reservation.release(now)
            self._persist(record, reservation)

        logger.info(
            "Reservation released",
            reservation_id=reservation_id,
            order_id=str(reservation.order_id),
            quantity=reservation.quantity,
        )
        return reservation

    def release_many(self, reservation_ids: Iterable[str], persist_with: Iterable = ()) -> list[Reservation]:
        """Release several reservations and persist ``persist_with`` in the same unit of work.

        Reservations that are no longer HELD are skipped. Returns the ones
        this call released.
        """
        return self._close_many(reservation_ids, persist_with, commit=False)

    def commit(self, reservation_id: str) -> Reservation:
        """Turn a held reservation into a permanent sale. Idempotent once COMMITTED."""
        committed = self.commit_many([reservation_id])
        return committed[0] if committed else self.get_reservation(reservation_id)

    def commit_many(self, reservation_ids: Iterable[str], persist_with: Iterable = ()) -> list[Reservation]:
        """Commit several reservations at once, all or none.

        Every reservation is checked before any counter moves. Already
        committed ones are skipped; an expired or released one aborts the
        whole call. ``persist_with`` aggregates are written in the same
        unit of work.
        """
        return self._close_many(reservation_ids, persist_with, commit=True)

    def _close_many(self, reservation_ids: Iterable[str], persist_with: Iterable, commit: bool) -> list[Reservation]:
        reservation_ids = list(dict.fromkeys(str(rid) for rid in reservation_ids))
        keys = [self.get_reservation(rid).stock_key for rid in reservation_ids]

        with self.locks.hold_many(keys):
            now = self.clock()
            reservations = [self.get_reservation(rid) for rid in reservation_ids]
            if commit:
                for reservation in reservations:
                    self._assert_committable(reservation, now)
            pending = [r for r in reservations if r.is_held()]

            records = {}
            for reservation in pending:
                record = records.get(reservation.stock_key) or self._require_record(reservation)
                records[reservation.stock_key] = record
                if commit:
                    record.commit(reservation.quantity, now)
                    reservation.commit(now)
                else:
                    record.release(reservation.quantity, now)
                    reservation.release(now)

            to_persist = [*records.values(), *pending, *persist_with]
            if to_persist:
                self._persist(*to_persist)

        logger.info(
            "Reservations committed" if commit else "Reservations released",
            reservation_ids=[str(r.id) for r in pending],
            skipped=len(reservations) - len(pending),
        )
        return pending

    def _assert_committable(self, reservation: Reservation, now) -> None:
        status = ReservationStatus(reservation.status)
        if status == ReservationStatus.COMMITTED:
            return
        if status == ReservationStatus.EXPIRED or (status == ReservationStatus.HELD and reservation.is_past_expiry(now)):
            raise ReservationExpired(f"Reservation {reservation.id} expired at {reservation.expires_at.isoformat()}")
        if status != ReservationStatus.HELD:
            raise ReservationNotFound(f"No held reservation {reservation.id} (status {status.value})")

    # -------------------------------------------------------------------
    # Expiry sweep
    # -------------------------------------------------------------------
    def sweep_expired(self) -> int:
        """Release every HELD reservation past its expiry and mark it EXPIRED.

        Safe to run concurrently with itself and with release/commit: each
        reservation is re-read under its stock lock and only a still-HELD,
        still-expired one is touched. Failures are logged and left for the
        next sweep.
        """
        now = self.clock()
        candidates = [r for r in self._reservation_repo().held() if r.is_past_expiry(now)]
        if not candidates:
            logger.debug("No expired reservations found")
            return 0

        expired_count = 0
        for candidate in candidates:
            try:
                with self.locks.hold(candidate.stock_key):
                    reservation = self.get_reservation(str(candidate.id))
                    if not reservation.is_held() or not reservation.is_past_expiry(now):
                        continue
                    record = self._require_record(reservation)
                    record.release(reservation.quantity, now)
                    reservation.expire(now)
                    self._persist(record, reservation)
                expired_count += 1
                logger.info(
                    "Expired reservation released",
                    reservation_id=str(reservation.id),
                    order_id=str(reservation.order_id),
                    expired_at=reservation.expires_at.isoformat(),
                )
            except (ValidationError, InvalidOperationError, ObjectNotFoundError) as exc:
                logger.warning(
                    "Failed to expire reservation",
                    reservation_id=str(candidate.id),
                    error=str(exc),
                )

        logger.info("Reservation sweep complete", expired_count=expired_count, candidates=len(candidates))
        return expired_count

    # -------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------
    def _require_record(self, reservation: Reservation) -> StockRecord:
        record = self.stock_level(str(reservation.product_id), str(reservation.warehouse_id))
        if record is None:
            raise ValidationError(
                {"reservation_id": [f"Reservation {reservation.id} has no stock record at {reservation.warehouse_id}"]}
            )
        return record

    def _persist(self, *aggregates) -> None:
        with UnitOfWork():
            for aggregate in aggregates:
                current_domain.repository_for(type(aggregate)).add(aggregate)
