"""Stock and reservation load test scenarios.

Two SequentialTaskSet journeys over private stock records, plus a
contention user that hammers a small pool of shared products so that
concurrent reservations race for the same units.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import HOT_PRODUCTS, receive_stock_data, reserve_order_data
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import ReservationState, StockState


class _StockedJourney(SequentialTaskSet):
    """Receive stock for a fresh product, then reserve part of it."""

    reserve_quantity = 3

    def on_start(self):
        self.stock = StockState()
        self.reservation = ReservationState()

    @task
    def receive_stock(self):
        payload = receive_stock_data(quantity=50)
        with self.client.post(
            "/stock/receive",
            json=payload,
            catch_response=True,
            name="POST /stock/receive",
        ) as resp:
            if resp.status_code == 201:
                self.stock.product_id = payload["product_id"]
                self.stock.warehouse_id = payload["warehouse_id"]
                self.stock.received = payload["quantity"]
            else:
                resp.failure(f"Receive stock failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def reserve_order(self):
        payload = reserve_order_data(self.stock.warehouse_id, [(self.stock.product_id, self.reserve_quantity)])
        with self.client.post(
            "/reservations",
            json=payload,
            catch_response=True,
            name="POST /reservations",
        ) as resp:
            if resp.status_code == 201:
                self.reservation.order_id = payload["order_id"]
                self.reservation.warehouse_id = payload["warehouse_id"]
                self.reservation.reservation_ids = [r["reservation_id"] for r in resp.json()["reservations"]]
            else:
                resp.failure(f"Reserve failed: {resp.status_code} — {extract_error_detail(resp)}")
                self.interrupt()


class ReservationCommitJourney(_StockedJourney):
    """Receive -> Reserve -> Commit -> Stock check.

    Models an order that ships: held units become a permanent deduction.
    """

    @task
    def commit(self):
        for reservation_id in self.reservation.reservation_ids:
            with self.client.put(
                f"/reservations/{reservation_id}/commit",
                catch_response=True,
                name="PUT /reservations/{id}/commit",
            ) as resp:
                if resp.status_code != 200:
                    resp.failure(f"Commit failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def stock_check(self):
        with self.client.get(
            f"/stock/{self.stock.warehouse_id}/{self.stock.product_id}",
            catch_response=True,
            name="GET /stock/{warehouse}/{product}",
        ) as resp:
            expected = self.stock.received - self.reserve_quantity
            if resp.status_code != 200:
                resp.failure(f"Stock check failed: {resp.status_code} — {extract_error_detail(resp)}")
            elif resp.json()["available"] != expected or resp.json()["reserved"] != 0:
                resp.failure(f"Stock drifted: {resp.json()} (expected {expected} available)")

    @task
    def done(self):
        self.interrupt()


class ReservationReleaseJourney(_StockedJourney):
    """Receive -> Reserve -> Release twice.

    Models a cancelled order; the second release must be a harmless no-op.
    """

    @task
    def release(self):
        for _ in range(2):
            for reservation_id in self.reservation.reservation_ids:
                with self.client.put(
                    f"/reservations/{reservation_id}/release",
                    catch_response=True,
                    name="PUT /reservations/{id}/release",
                ) as resp:
                    if resp.status_code != 200 or resp.json()["status"] != "Released":
                        resp.failure(f"Release failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class HotStockUser(HttpUser):
    """Concurrent reservations against a handful of shared stock records.

    A 409 is the expected answer once a product runs dry, so it is not a
    failure. What matters is that the final stock levels never go negative
    and ``available + reserved`` only moves by committed units.
    """

    wait_time = between(0.05, 0.3)

    def on_start(self):
        self.held: list[str] = []
        product_id = random.choice(HOT_PRODUCTS)
        self.client.post(
            "/stock/receive",
            json=receive_stock_data(product_id=product_id, warehouse_id="US", quantity=20),
            name="[HOT] POST /stock/receive",
        )

    @task(6)
    def reserve(self):
        product_id = random.choice(HOT_PRODUCTS)
        with self.client.post(
            "/reservations",
            json=reserve_order_data("US", [(product_id, random.randint(1, 3))]),
            catch_response=True,
            name="[HOT] POST /reservations",
        ) as resp:
            if resp.status_code == 201:
                self.held.extend(r["reservation_id"] for r in resp.json()["reservations"])
            elif resp.status_code in (404, 409):
                resp.success()
            else:
                resp.failure(f"Reserve failed: {resp.status_code} — {extract_error_detail(resp)}")

    @task(3)
    def release(self):
        if not self.held:
            return
        reservation_id = self.held.pop(random.randrange(len(self.held)))
        self.client.put(f"/reservations/{reservation_id}/release", name="[HOT] PUT /reservations/{id}/release")

    @task(1)
    def availability(self):
        self.client.get(
            f"/availability/{random.choice(HOT_PRODUCTS)}",
            params={"quantity": 2},
            name="[HOT] GET /availability/{product}",
        )
