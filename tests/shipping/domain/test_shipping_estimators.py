"""Tests for the rate-table and fake shipping estimators."""

import random
from datetime import UTC, datetime, timedelta

import pytest
from logistics.errors import ShippingUnavailable
from logistics.shipping import build_shipping_estimator
from logistics.shipping.fake_adapter import FakeShippingEstimator
from logistics.shipping.port import Destination, ParcelItem, Urgency
from logistics.shipping.rate_table import RateTableEstimator, add_business_days, package_count

WEDNESDAY = datetime(2026, 4, 15, 10, 0, tzinfo=UTC)
FRIDAY = datetime(2026, 4, 17, 10, 0, tzinfo=UTC)

US = Destination(country="US", postal_code="60601", city="Chicago")
DE = Destination(country="DE", postal_code="10115", city="Berlin")


@pytest.fixture()
def estimator():
    return RateTableEstimator(clock=lambda: WEDNESDAY, rng=random.Random(7))


def _parcel(weight=2.0, hazardous=False, length=0.0):
    return [ParcelItem("prod-001", 1, weight=weight, length=length, hazardous=hazardous)]


class TestCarrierSelection:
    def test_standard_takes_the_cheapest(self, estimator):
        quote = estimator.estimate(_parcel(), "US", US, Urgency.STANDARD)
        assert (quote.carrier, quote.service) == ("USPS", "Ground Advantage")
        # (15 + 0.5 * 2) * 0.9
        assert quote.cost == 14.4
        assert quote.currency == "USD"

    def test_hazardous_goods_skip_non_hazmat_carriers(self, estimator):
        quote = estimator.estimate(_parcel(hazardous=True), "US", US, Urgency.STANDARD)
        assert quote.carrier == "FedEx"
        assert quote.cost == 41.0

    def test_domestic_only_carriers_skip_exports(self, estimator):
        quote = estimator.estimate(_parcel(), "US", DE, Urgency.STANDARD)
        assert quote.carrier == "FedEx"

    def test_express_takes_the_fastest(self, estimator):
        quote = estimator.estimate(_parcel(), "US", US, Urgency.EXPRESS)
        assert quote.transit_days == 2
        assert quote.carrier == "FedEx"

    def test_overnight_ties_break_on_cost(self, estimator):
        quote = estimator.estimate(_parcel(), "EU", DE, Urgency.OVERNIGHT)
        assert (quote.carrier, quote.service) == ("UPS", "Next Day Air")
        assert quote.cost == 52.8
        assert quote.currency == "EUR"

    def test_oversize_surcharge(self, estimator):
        regular = estimator.estimate(_parcel(), "US", US, Urgency.STANDARD)
        oversize = estimator.estimate(_parcel(length=120.0), "US", US, Urgency.STANDARD)
        assert oversize.cost > regular.cost + 15.0 - 0.01

    def test_no_service_at_that_urgency(self, estimator):
        with pytest.raises(ShippingUnavailable):
            estimator.estimate(_parcel(), "JP", US, Urgency.OVERNIGHT)

    def test_unknown_warehouse(self, estimator):
        with pytest.raises(ShippingUnavailable):
            estimator.estimate(_parcel(), "MARS", US, Urgency.STANDARD)

    def test_nothing_to_ship(self, estimator):
        with pytest.raises(ShippingUnavailable):
            estimator.estimate([], "US", US, Urgency.STANDARD)

    def test_tracking_number_names_carrier_and_warehouse(self, estimator):
        quote = estimator.estimate(_parcel(), "US", US, Urgency.STANDARD)
        assert quote.tracking_number.startswith("USPUS")


class TestDates:
    def test_standard_counts_business_days(self):
        # one processing day plus five transit days, weekend skipped
        assert RateTableEstimator.delivery_date(FRIDAY, Urgency.STANDARD, 5) == FRIDAY + timedelta(days=10)

    def test_overnight_has_no_processing_day(self):
        assert RateTableEstimator.delivery_date(FRIDAY, Urgency.OVERNIGHT, 1) == FRIDAY + timedelta(days=1)

    def test_express_uses_calendar_days(self):
        assert RateTableEstimator.delivery_date(FRIDAY, Urgency.EXPRESS, 2) == FRIDAY + timedelta(days=3)

    def test_add_business_days_skips_weekends(self):
        assert add_business_days(FRIDAY, 1) == FRIDAY + timedelta(days=3)
        assert add_business_days(WEDNESDAY, 2) == FRIDAY


class TestPackages:
    @pytest.mark.parametrize(
        "weight,volume,expected",
        [(0.5, 100.0, 1), (30.0, 0.0, 1), (65.0, 0.0, 3), (1.0, 250_000.0, 3)],
    )
    def test_package_count(self, weight, volume, expected):
        assert package_count(weight, volume) == expected


class TestFakeEstimator:
    def test_deterministic_quote(self):
        fake = FakeShippingEstimator(clock=lambda: WEDNESDAY)
        quote = fake.estimate(_parcel(weight=2.5), "US", US, Urgency.EXPRESS)
        assert quote.carrier == "FakeShip"
        assert quote.cost == 12.5
        assert quote.estimated_delivery == WEDNESDAY + timedelta(days=2)
        assert fake.requests == [("US", US, Urgency.EXPRESS)]

    def test_configured_failure(self):
        fake = FakeShippingEstimator()
        fake.configure(should_succeed=False, failure_reason="Carrier strike")
        with pytest.raises(ShippingUnavailable, match="Carrier strike"):
            fake.estimate(_parcel(), "US", US, Urgency.STANDARD)


class TestEstimatorFactory:
    def test_builds_by_name(self):
        assert isinstance(build_shipping_estimator("rate_table"), RateTableEstimator)
        assert isinstance(build_shipping_estimator("fake"), FakeShippingEstimator)

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            build_shipping_estimator("pigeon")
