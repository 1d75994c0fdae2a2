"""Integration tests for the fulfillment endpoints."""

import pytest


def _assign(client, order_id="ord-001", warehouse_id="US", **overrides):
    body = {"order_id": order_id, "warehouse_id": warehouse_id, "staff_id": "staff-01"}
    body.update(overrides)
    return client.post("/fulfillments", json=body)


def _picked_in_full():
    return [
        {"product_id": "prod-kb", "quantity_picked": 2},
        {"product_id": "prod-mp", "quantity_picked": 1},
    ]


@pytest.fixture()
def assigned_id(api_client, stocked_order):
    return _assign(api_client).json()["fulfillment_id"]


@pytest.fixture()
def packed_id(api_client, assigned_id):
    api_client.post(f"/fulfillments/{assigned_id}/picking/start", json={"staff_id": "staff-01"})
    api_client.post(
        f"/fulfillments/{assigned_id}/picking/complete",
        json={"staff_id": "staff-01", "picked_items": _picked_in_full()},
    )
    api_client.post(f"/fulfillments/{assigned_id}/packing/complete", json={"staff_id": "staff-01"})
    return assigned_id


class TestAssignEndpoint:
    def test_assign(self, api_client, stocked_order):
        response = _assign(api_client)
        assert response.status_code == 201
        data = response.json()
        assert data["revision"] == 1
        assert data["picking_plan"]["zone_route"] == ["A", "B"]

    def test_get_fulfillment(self, api_client, assigned_id):
        response = api_client.get(f"/fulfillments/{assigned_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "Assigned"
        assert data["progress_percent"] == 10
        assert [s["step_type"] for s in data["steps"]] == ["Picking", "Quality_Check", "Packing", "Shipping"]
        assert [p["zone"] for p in data["pick_lines"]] == ["A", "B"]

    def test_find_by_order(self, api_client, assigned_id):
        response = api_client.get("/fulfillments", params={"order_id": "ord-001"})
        assert [f["fulfillment_id"] for f in response.json()] == [assigned_id]

    def test_unknown_fulfillment_is_404(self, api_client):
        assert api_client.get("/fulfillments/ff-404").status_code == 404

    def test_duplicate_is_400(self, api_client, assigned_id):
        assert _assign(api_client).status_code == 400

    def test_short_stock_is_409_with_alternatives(self, api_client, services):
        services.ledger.receive_stock("prod-kb", "US", 1)
        services.ledger.receive_stock("prod-kb", "AU", 8)
        services.orders.put("ord-002", [("prod-kb", 3)])

        response = _assign(api_client, order_id="ord-002")

        assert response.status_code == 409
        data = response.json()
        assert data["missing_items"][0]["deficit"] == 2
        assert [a["warehouse_id"] for a in data["alternatives"]] == ["AU"]

    def test_unauthorized_staff_is_403(self, api_client, services, stocked_order):
        services.staff.allow_all = False
        assert _assign(api_client).status_code == 403


class TestWorkflowEndpoints:
    def test_picking_with_discrepancy_requires_check(self, api_client, assigned_id):
        api_client.post(f"/fulfillments/{assigned_id}/picking/start", json={"staff_id": "staff-01"})
        response = api_client.post(
            f"/fulfillments/{assigned_id}/picking/complete",
            json={"staff_id": "staff-01", "picked_items": [{"product_id": "prod-kb", "quantity_picked": 2}]},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["quality_check_required"] is True
        assert data["discrepancies"] == ["prod-mp: not picked"]

        response = api_client.post(
            f"/fulfillments/{assigned_id}/quality-check",
            json={"staff_id": "staff-qc", "passed": True, "notes": "Pad found"},
        )
        assert response.json()["status"] == "Packing"

    def test_free_text_condition_requires_check(self, api_client, assigned_id):
        api_client.post(f"/fulfillments/{assigned_id}/picking/start", json={"staff_id": "staff-01"})
        picked = _picked_in_full()
        picked[0]["condition"] = "scratched"
        response = api_client.post(
            f"/fulfillments/{assigned_id}/picking/complete",
            json={"staff_id": "staff-01", "picked_items": picked},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["fulfillment"]["status"] == "Picked"
        assert data["quality_check_required"] is True
        assert data["discrepancies"] == ["prod-kb: condition scratched"]

    def test_foreign_picking_task_is_404(self, api_client, assigned_id):
        api_client.post(f"/fulfillments/{assigned_id}/picking/start", json={"staff_id": "staff-01"})
        response = api_client.post(
            f"/fulfillments/{assigned_id}/picking/complete",
            json={"staff_id": "staff-01", "picking_task_id": "task-x", "picked_items": _picked_in_full()},
        )
        assert response.status_code == 404

    def test_out_of_order_step_is_409(self, api_client, assigned_id):
        response = api_client.post(f"/fulfillments/{assigned_id}/packing/complete", json={"staff_id": "staff-01"})
        assert response.status_code == 409
        assert response.json()["from"] == "Assigned"

    def test_stale_revision_is_409(self, api_client, assigned_id):
        api_client.post(f"/fulfillments/{assigned_id}/picking/start", json={"staff_id": "staff-01"})
        response = api_client.post(
            f"/fulfillments/{assigned_id}/cancel",
            json={"staff_id": "staff-01", "reason": "Stale", "expected_revision": 1},
        )
        assert response.status_code == 409
        assert response.json()["actual_revision"] == 2

    def test_ship_and_deliver(self, api_client, packed_id, services):
        response = api_client.post(
            f"/fulfillments/{packed_id}/shipping/arrange",
            json={"staff_id": "staff-01", "country": "US", "urgency": "Overnight"},
        )
        assert response.status_code == 200
        assert response.json()["shipping"]["carrier"] == "FakeShip"

        response = api_client.post(
            f"/fulfillments/{packed_id}/shipping-label",
            json={
                "staff_id": "staff-01",
                "carrier": "FakeShip",
                "service_level": "Overnight",
                "tracking_number": "FAKE-123",
            },
        )
        assert response.status_code == 200
        assert response.json()["status"] == "Shipped"
        assert services.ledger.stock_level("prod-kb", "US").reserved == 0

        response = api_client.post(f"/fulfillments/{packed_id}/deliver", json={"staff_id": "staff-01"})
        assert response.json()["progress_percent"] == 100

    def test_no_carrier_is_422(self, api_client, packed_id, services):
        services.shipping.configure(should_succeed=False)
        response = api_client.post(
            f"/fulfillments/{packed_id}/shipping/arrange",
            json={"staff_id": "staff-01", "country": "US"},
        )
        assert response.status_code == 422
        assert api_client.get(f"/fulfillments/{packed_id}").json()["status"] == "Packed"

    def test_cancel_releases_stock(self, api_client, assigned_id, services):
        response = api_client.post(
            f"/fulfillments/{assigned_id}/cancel",
            json={"staff_id": "staff-01", "reason": "Customer cancelled"},
        )
        assert response.status_code == 200
        assert response.json()["cancellation_reason"] == "Customer cancelled"
        assert services.ledger.stock_level("prod-kb", "US").available == 20

    def test_cancel_without_reason_is_400(self, api_client, assigned_id):
        response = api_client.post(f"/fulfillments/{assigned_id}/cancel", json={"staff_id": "staff-01"})
        assert response.status_code == 400
