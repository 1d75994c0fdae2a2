"""Price quote load test scenario."""

import random

from locust import HttpUser, between, task

from loadtests.data_generators import quote_data
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import QuoteState


class QuoteUser(HttpUser):
    """Storefront traffic asking for prices and re-reading recent quotes."""

    wait_time = between(0.2, 1.5)

    def on_start(self):
        self.state = QuoteState()

    @task(5)
    def create_quote(self):
        with self.client.post("/quotes", json=quote_data(), catch_response=True, name="POST /quotes") as resp:
            if resp.status_code != 201:
                resp.failure(f"Quote failed: {resp.status_code} — {extract_error_detail(resp)}")
                return
            body = resp.json()
            if body["computed_price"] < round(body["base_price"] * 0.7, 2):
                resp.failure(f"Price below floor: {body['computed_price']} for base {body['base_price']}")
            self.state.quote_ids = (self.state.quote_ids + [body["quote_id"]])[-20:]

    @task(2)
    def read_quote(self):
        if not self.state.quote_ids:
            return
        quote_id = random.choice(self.state.quote_ids)
        with self.client.get(f"/quotes/{quote_id}", catch_response=True, name="GET /quotes/{id}") as resp:
            # Quotes lapse after their validity window
            if resp.status_code in (200, 410):
                resp.success()
            else:
                resp.failure(f"Get quote failed: {resp.status_code} — {extract_error_detail(resp)}")
