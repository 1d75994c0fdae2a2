"""Faker-based data generators for Locust load test scenarios.

Payloads match the field names of the logistics API's pydantic request
schemas. Warehouse ids are the four seeded regional warehouses.
"""

import random
import uuid

from faker import Faker

fake = Faker()

WAREHOUSES = ["US", "EU", "JP", "AU"]
SEGMENTS = ["Individual", "Business", "Enterprise"]

# A small shared pool so concurrent users fight over the same stock records
HOT_PRODUCTS = [f"prod-hot-{n:02d}" for n in range(5)]


def unique_product_id() -> str:
    return f"prod-lt-{uuid.uuid4().hex[:8]}"


def unique_order_id() -> str:
    return f"ord-lt-{uuid.uuid4().hex[:8]}"


def receive_stock_data(
    product_id: str | None = None,
    warehouse_id: str | None = None,
    quantity: int | None = None,
) -> dict:
    """Generate ReceiveStockRequest payload."""
    return {
        "product_id": product_id or unique_product_id(),
        "warehouse_id": warehouse_id or random.choice(WAREHOUSES),
        "quantity": quantity if quantity is not None else random.randint(20, 500),
        "reorder_level": 10,
        "reorder_quantity": 50,
    }


def reserve_order_data(
    warehouse_id: str,
    lines: list[tuple[str, int]],
    order_id: str | None = None,
) -> dict:
    """Generate ReserveOrderRequest payload."""
    return {
        "order_id": order_id or unique_order_id(),
        "warehouse_id": warehouse_id,
        "line_items": [{"product_id": product_id, "quantity": quantity} for product_id, quantity in lines],
    }


def customer_data() -> dict:
    """Either an explicit segment or an order history to derive one from."""
    customer_id = f"cust-{fake.user_name()[:12]}-{uuid.uuid4().hex[:4]}"
    if random.random() < 0.5:
        return {
            "customer_id": customer_id,
            "segment": random.choice(SEGMENTS),
            "is_repeat_customer": random.random() < 0.6,
        }
    return {
        "customer_id": customer_id,
        "total_orders": random.randint(0, 40),
        "total_spent": round(random.uniform(0, 80_000), 2),
    }


def quote_data(product_id: str | None = None) -> dict:
    """Generate QuoteRequest payload."""
    return {
        "product_id": product_id or random.choice(HOT_PRODUCTS),
        "quantity": random.choice([1, 1, 1, 2, 5, 10, 25, 60]),
        "base_price": round(random.uniform(9.99, 999.99), 2),
        "customer": customer_data(),
    }
