"""Logistics load testing: Locust entry point.

Discovers all user classes from the scenarios package.
Run specific scenarios with Locust's class selection.

Usage:
    # All scenarios (web UI):
    locust -f loadtests/locustfile.py

    # Mixed workload only:
    locust -f loadtests/locustfile.py MixedWorkloadUser

    # Reservation contention on shared stock:
    locust -f loadtests/locustfile.py HotStockUser

    # Headless (CI mode):
    locust -f loadtests/locustfile.py MixedWorkloadUser --headless \
           -u 50 -r 5 -t 300s --csv=results/loadtest
"""

import logging
import time

import requests
from locust import events

# Import all user classes so Locust discovers them
from loadtests.data_generators import HOT_PRODUCTS
from loadtests.helpers.response import extract_error_detail
from loadtests.scenarios.mixed import MixedWorkloadUser  # noqa: F401
from loadtests.scenarios.pricing import QuoteUser  # noqa: F401
from loadtests.scenarios.reservations import HotStockUser  # noqa: F401

logger = logging.getLogger("loadtest")

HOT_WAREHOUSE = "US"


@events.request.add_listener
def on_request(request_type, name, response, exception, **_kw):
    """Log error details for every failed request.

    Contention 409s are reported by the scenarios themselves, so only
    unexpected statuses reach the log as errors.
    """
    if exception:
        logger.error("[EXCEPTION] %s %s: %s", request_type, name, exception)
    elif response is not None and response.status_code >= 400 and not name.startswith("[HOT]"):
        detail = extract_error_detail(response)
        logger.error("[%s] %s %s: %s", response.status_code, request_type, name, detail)


@events.test_start.add_listener
def on_test_start(environment, **_kwargs):
    """Log a marker when load test begins."""
    print(f"\n[LOADTEST] Started at {time.strftime('%H:%M:%S')}")
    print(f"[LOADTEST] Target host: {environment.host}")
    print()


@events.test_stop.add_listener
def on_test_stop(environment, **_kwargs):
    """Print the hot stock records and flag any that went negative."""
    print(f"\n[LOADTEST] Stopped at {time.strftime('%H:%M:%S')}")
    if not environment.host:
        return
    try:
        health = requests.get(f"{environment.host}/health", timeout=5)
        print(f"[LOADTEST] Health: {health.status_code} {health.text[:200]}")

        print("\n[LOADTEST] Final hot stock levels:")
        for product_id in HOT_PRODUCTS:
            resp = requests.get(f"{environment.host}/stock/{HOT_WAREHOUSE}/{product_id}", timeout=5)
            if resp.status_code != 200:
                print(f"  {product_id}: {resp.status_code} {extract_error_detail(resp)}")
                continue
            level = resp.json()
            oversold = level["available"] < 0 or level["reserved"] < 0
            marker = "  OVERSOLD" if oversold else ""
            print(f"  {product_id}: available={level['available']} reserved={level['reserved']}{marker}")
        print()
    except requests.RequestException as e:
        print(f"[LOADTEST] Could not fetch final stock levels: {e}\n")
