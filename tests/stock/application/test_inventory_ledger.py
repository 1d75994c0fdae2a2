"""Application tests for the InventoryLedger — receiving, reservations and the expiry sweep."""

from datetime import timedelta

import pytest
from logistics.errors import OutOfStock, ReservationExpired, ReservationNotFound
from logistics.stock.ledger import InventoryLedger
from logistics.stock.stock import Reservation, ReservationStatus
from logistics.utils.locking import KeyedLock
from protean import current_domain
from protean.exceptions import ValidationError


@pytest.fixture()
def ledger(clock):
    return InventoryLedger(clock=clock)


def _stored(reservation):
    return current_domain.repository_for(Reservation).get(str(reservation.id))


class TestReceiveStock:
    def test_first_receipt_opens_the_record(self, ledger):
        ledger.receive_stock("prod-001", "US", 40)
        record = ledger.stock_level("prod-001", "US")
        assert record.available == 40
        assert record.reserved == 0

    def test_receipts_accumulate(self, ledger):
        ledger.receive_stock("prod-001", "US", 40)
        ledger.receive_stock("prod-001", "US", 15)
        assert ledger.stock_level("prod-001", "US").available == 55

    def test_receipt_can_update_reorder_figures(self, ledger):
        ledger.receive_stock("prod-001", "US", 40)
        ledger.receive_stock("prod-001", "US", 1, reorder_level=5, reorder_quantity=25)
        record = ledger.stock_level("prod-001", "US")
        assert record.reorder_level == 5
        assert record.reorder_quantity == 25

    def test_unknown_record_has_no_level(self, ledger):
        assert ledger.stock_level("prod-404", "US") is None

    def test_total_available_spans_warehouses(self, ledger):
        ledger.receive_stock("prod-001", "US", 40)
        ledger.receive_stock("prod-001", "EU", 10)
        ledger.receive_stock("prod-002", "EU", 99)
        assert ledger.total_available("prod-001") == 50


class TestReserve:
    def test_reserve_persists_hold_and_counters(self, ledger, clock):
        ledger.receive_stock("prod-001", "US", 40)
        reservation = ledger.reserve("prod-001", "US", 15, "ord-001")

        stored = _stored(reservation)
        assert stored.status == ReservationStatus.HELD.value
        assert stored.quantity == 15
        assert stored.expires_at == clock() + timedelta(hours=24)

        record = ledger.stock_level("prod-001", "US")
        assert record.available == 25
        assert record.reserved == 15

    def test_reserve_with_custom_ttl(self, ledger, clock):
        ledger.receive_stock("prod-001", "US", 40)
        reservation = ledger.reserve("prod-001", "US", 1, "ord-001", ttl=timedelta(minutes=30))
        assert reservation.expires_at == clock() + timedelta(minutes=30)

    def test_reserve_without_record_is_out_of_stock(self, ledger):
        with pytest.raises(OutOfStock) as exc_info:
            ledger.reserve("prod-404", "US", 1, "ord-001")
        assert exc_info.value.available == 0

    def test_reserve_beyond_available_changes_nothing(self, ledger):
        ledger.receive_stock("prod-001", "US", 10)
        with pytest.raises(OutOfStock):
            ledger.reserve("prod-001", "US", 11, "ord-001")
        record = ledger.stock_level("prod-001", "US")
        assert record.available == 10
        assert record.reserved == 0
        assert ledger.reservations_for_order("ord-001") == []

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_reserve_rejects_non_positive_quantity(self, ledger, quantity):
        ledger.receive_stock("prod-001", "US", 10)
        with pytest.raises(ValidationError):
            ledger.reserve("prod-001", "US", quantity, "ord-001")


class TestReserveMany:
    def test_every_line_is_held_together(self, ledger):
        ledger.receive_stock("prod-001", "US", 10)
        ledger.receive_stock("prod-002", "EU", 10)
        made = ledger.reserve_many([("prod-001", "US", 4), ("prod-002", "EU", 6)], "ord-001")

        assert [(str(r.product_id), str(r.warehouse_id), r.quantity) for r in made] == [
            ("prod-001", "US", 4),
            ("prod-002", "EU", 6),
        ]
        assert ledger.stock_level("prod-001", "US").reserved == 4
        assert ledger.stock_level("prod-002", "EU").available == 4

    def test_short_line_writes_nothing(self, ledger):
        ledger.receive_stock("prod-001", "US", 10)
        ledger.receive_stock("prod-002", "US", 1)

        with pytest.raises(OutOfStock) as exc_info:
            ledger.reserve_many([("prod-001", "US", 5), ("prod-002", "US", 3)], "ord-001")

        assert (exc_info.value.product_id, exc_info.value.available) == ("prod-002", 1)
        assert ledger.stock_level("prod-001", "US").available == 10
        assert ledger.stock_level("prod-001", "US").reserved == 0
        assert ledger.reservations_for_order("ord-001") == []

    def test_repeated_record_counts_every_line(self, ledger):
        ledger.receive_stock("prod-001", "US", 5)
        with pytest.raises(OutOfStock) as exc_info:
            ledger.reserve_many([("prod-001", "US", 3), ("prod-001", "US", 3)], "ord-001")
        assert exc_info.value.available == 2
        assert ledger.stock_level("prod-001", "US").available == 5

    def test_missing_record_is_out_of_stock(self, ledger):
        ledger.receive_stock("prod-001", "US", 5)
        with pytest.raises(OutOfStock):
            ledger.reserve_many([("prod-001", "US", 1), ("prod-404", "US", 1)], "ord-001")
        assert ledger.reservations_for_order("ord-001") == []

    def test_no_lines(self, ledger):
        assert ledger.reserve_many([], "ord-001") == []

    def test_locks_are_shared_with_an_empty_registry(self):
        locks = KeyedLock()
        assert InventoryLedger(locks=locks).locks is locks


class TestRelease:
    def test_release_returns_units(self, ledger):
        ledger.receive_stock("prod-001", "US", 10)
        reservation = ledger.reserve("prod-001", "US", 4, "ord-001")
        ledger.release(str(reservation.id))

        assert _stored(reservation).status == ReservationStatus.RELEASED.value
        record = ledger.stock_level("prod-001", "US")
        assert record.available == 10
        assert record.reserved == 0

    def test_release_twice_is_harmless(self, ledger):
        ledger.receive_stock("prod-001", "US", 10)
        reservation = ledger.reserve("prod-001", "US", 4, "ord-001")
        ledger.release(str(reservation.id))
        again = ledger.release(str(reservation.id))

        assert again.status == ReservationStatus.RELEASED.value
        assert ledger.stock_level("prod-001", "US").available == 10

    def test_release_after_commit_keeps_the_sale(self, ledger):
        ledger.receive_stock("prod-001", "US", 10)
        reservation = ledger.reserve("prod-001", "US", 4, "ord-001")
        ledger.commit(str(reservation.id))
        ledger.release(str(reservation.id))

        assert _stored(reservation).status == ReservationStatus.COMMITTED.value
        assert ledger.stock_level("prod-001", "US").available == 6

    def test_release_unknown_reservation(self, ledger):
        with pytest.raises(ReservationNotFound):
            ledger.release("res-404")


class TestCommit:
    def test_commit_makes_the_sale_permanent(self, ledger):
        ledger.receive_stock("prod-001", "US", 10)
        reservation = ledger.reserve("prod-001", "US", 4, "ord-001")
        committed = ledger.commit(str(reservation.id))

        assert committed.status == ReservationStatus.COMMITTED.value
        record = ledger.stock_level("prod-001", "US")
        assert record.available == 6
        assert record.reserved == 0

    def test_commit_twice_is_harmless(self, ledger):
        ledger.receive_stock("prod-001", "US", 10)
        reservation = ledger.reserve("prod-001", "US", 4, "ord-001")
        ledger.commit(str(reservation.id))
        again = ledger.commit(str(reservation.id))

        assert again.status == ReservationStatus.COMMITTED.value
        record = ledger.stock_level("prod-001", "US")
        assert record.available == 6
        assert record.reserved == 0

    def test_commit_after_release_is_rejected(self, ledger):
        ledger.receive_stock("prod-001", "US", 10)
        reservation = ledger.reserve("prod-001", "US", 4, "ord-001")
        ledger.release(str(reservation.id))
        with pytest.raises(ReservationNotFound):
            ledger.commit(str(reservation.id))

    def test_commit_past_expiry_is_rejected(self, ledger, clock):
        ledger.receive_stock("prod-001", "US", 10)
        reservation = ledger.reserve("prod-001", "US", 4, "ord-001")
        clock.advance(hours=25)

        with pytest.raises(ReservationExpired):
            ledger.commit(str(reservation.id))
        assert _stored(reservation).status == ReservationStatus.HELD.value
        assert ledger.stock_level("prod-001", "US").reserved == 4

    def test_commit_many_is_all_or_nothing(self, ledger, clock):
        ledger.receive_stock("prod-001", "US", 10)
        ledger.receive_stock("prod-002", "US", 10)
        short = ledger.reserve("prod-001", "US", 2, "ord-001", ttl=timedelta(hours=1))
        long = ledger.reserve("prod-002", "US", 3, "ord-001", ttl=timedelta(hours=48))
        clock.advance(hours=2)

        with pytest.raises(ReservationExpired):
            ledger.commit_many([str(short.id), str(long.id)])
        assert _stored(long).status == ReservationStatus.HELD.value
        assert ledger.stock_level("prod-002", "US").reserved == 3


class TestQueries:
    def test_get_unknown_reservation(self, ledger):
        with pytest.raises(ReservationNotFound):
            ledger.get_reservation("res-404")

    def test_reservations_for_order_filter_by_status(self, ledger):
        ledger.receive_stock("prod-001", "US", 10)
        ledger.receive_stock("prod-002", "US", 10)
        first = ledger.reserve("prod-001", "US", 1, "ord-001")
        ledger.reserve("prod-002", "US", 1, "ord-001")
        ledger.reserve("prod-002", "US", 1, "ord-002")
        ledger.release(str(first.id))

        assert len(ledger.reservations_for_order("ord-001")) == 2
        held = ledger.reservations_for_order("ord-001", ReservationStatus.HELD)
        assert [str(r.product_id) for r in held] == ["prod-002"]


class TestSweepExpired:
    def test_sweep_releases_only_expired_holds(self, ledger, clock):
        ledger.receive_stock("prod-001", "US", 10)
        stale = ledger.reserve("prod-001", "US", 3, "ord-001", ttl=timedelta(hours=1))
        fresh = ledger.reserve("prod-001", "US", 2, "ord-002", ttl=timedelta(hours=48))
        clock.advance(hours=2)

        assert ledger.sweep_expired() == 1
        assert _stored(stale).status == ReservationStatus.EXPIRED.value
        assert _stored(fresh).status == ReservationStatus.HELD.value

        record = ledger.stock_level("prod-001", "US")
        assert record.available == 8
        assert record.reserved == 2

    def test_sweep_is_idempotent(self, ledger, clock):
        ledger.receive_stock("prod-001", "US", 10)
        ledger.reserve("prod-001", "US", 3, "ord-001", ttl=timedelta(hours=1))
        clock.advance(hours=2)

        assert ledger.sweep_expired() == 1
        assert ledger.sweep_expired() == 0
        assert ledger.stock_level("prod-001", "US").available == 10

    def test_sweep_with_nothing_expired(self, ledger):
        ledger.receive_stock("prod-001", "US", 10)
        ledger.reserve("prod-001", "US", 3, "ord-001")
        assert ledger.sweep_expired() == 0

    def test_sweep_skips_committed_reservations(self, ledger, clock):
        ledger.receive_stock("prod-001", "US", 10)
        reservation = ledger.reserve("prod-001", "US", 3, "ord-001", ttl=timedelta(hours=1))
        ledger.commit(str(reservation.id))
        clock.advance(hours=2)

        assert ledger.sweep_expired() == 0
        assert ledger.stock_level("prod-001", "US").available == 7
