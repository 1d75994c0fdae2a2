"""Runtime settings for the logistics services.

Values come from ``LOGISTICS_*`` environment variables and are validated by
pydantic at startup. List values are comma separated, e.g.
``LOGISTICS_PEAK_MONTHS=11,12,1``.
"""

import os

from pydantic import BaseModel, Field, field_validator, model_validator

_ENV_PREFIX = "LOGISTICS_"


class Settings(BaseModel):
    environment: str = "development"

    # Reservations
    reservation_ttl_hours: float = Field(default=24, gt=0)
    sweep_interval_minutes: float = Field(default=60, gt=0)
    primary_warehouse_id: str = "US"
    reorder_suppression_minutes: float = Field(default=60, ge=0)

    # Pricing
    quote_ttl_minutes: float = Field(default=30, gt=0)
    signal_cache_seconds: float = Field(default=300, ge=0)
    cache_sweep_interval_seconds: float = Field(default=60, gt=0)
    high_demand_velocity: int = Field(default=100, ge=0)
    low_demand_velocity: int = Field(default=20, ge=0)
    low_inventory_units: int = Field(default=50, ge=0)
    high_inventory_units: int = Field(default=500, ge=0)
    peak_months: list[int] = Field(default_factory=lambda: [12, 1, 2])
    off_peak_months: list[int] = Field(default_factory=lambda: [7, 8, 9])

    # Shipping
    shipping_estimator: str = "rate_table"

    # Runtime
    scheduler_enabled: bool = True
    # "sync" runs event handlers right after each commit; "async" leaves them to the Engine
    event_processing: str | None = None

    @field_validator("peak_months", "off_peak_months", mode="before")
    @classmethod
    def split_months(cls, value):
        if isinstance(value, str):
            return [int(part) for part in value.split(",") if part.strip()]
        return value

    @field_validator("peak_months", "off_peak_months")
    @classmethod
    def months_in_range(cls, value: list[int]) -> list[int]:
        for month in value:
            if not 1 <= month <= 12:
                raise ValueError(f"Month {month} is not between 1 and 12")
        return value

    @field_validator("event_processing")
    @classmethod
    def known_processing(cls, value: str | None) -> str | None:
        if value is not None and value not in ("sync", "async"):
            raise ValueError(f"Unknown event processing mode: {value}")
        return value

    @field_validator("shipping_estimator")
    @classmethod
    def known_estimator(cls, value: str) -> str:
        if value not in ("rate_table", "fake"):
            raise ValueError(f"Unknown shipping estimator: {value}")
        return value

    @model_validator(mode="after")
    def default_processing(self) -> "Settings":
        if self.event_processing is None:
            self.event_processing = "async" if self.environment in ("production", "staging") else "sync"
        return self

    @model_validator(mode="after")
    def thresholds_are_ordered(self) -> "Settings":
        if self.low_demand_velocity > self.high_demand_velocity:
            raise ValueError("low_demand_velocity must not exceed high_demand_velocity")
        if self.low_inventory_units > self.high_inventory_units:
            raise ValueError("low_inventory_units must not exceed high_inventory_units")
        if set(self.peak_months) & set(self.off_peak_months):
            raise ValueError("A month cannot be both peak and off-peak")
        return self

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        """Build settings from ``LOGISTICS_*`` variables, falling back to defaults."""
        environ = os.environ if environ is None else environ
        values = {
            name[len(_ENV_PREFIX) :].lower(): raw for name, raw in environ.items() if name.startswith(_ENV_PREFIX)
        }
        values.setdefault("environment", environ.get("PROTEAN_ENV", "development"))
        known = {key: value for key, value in values.items() if key in cls.model_fields}
        return cls(**known)
