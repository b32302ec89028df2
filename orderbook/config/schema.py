"""Pydantic v2 configuration schema with strict validation."""

from pydantic import BaseModel, Field

from orderbook.config.defaults import (
    DEFAULT_ENDPOINT,
    DEFAULT_HEADERS,
    DEFAULT_QUERY_PARAMS,
)


class UpstreamConfig(BaseModel):
    model_config = {"extra": "forbid"}

    url: str = DEFAULT_ENDPOINT
    params: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_QUERY_PARAMS))
    headers: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_HEADERS))
    delivery_currency: str = "XPL"
    page_size: int = Field(default=10, ge=1, le=100)
    request_timeout_seconds: float = Field(default=30.0, gt=0.0)


class FetchConfig(BaseModel):
    model_config = {"extra": "forbid"}

    max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_ms: int = Field(default=2000, ge=0)
    cache_ttl_seconds: float = Field(default=3.0, ge=0.0)
    collection_timeout_seconds: float = Field(default=15.0, gt=0.0)
    concurrent_sides: bool = True


class ReconcileConfig(BaseModel):
    model_config = {"extra": "forbid"}

    # When false, a run where both sides came back empty closes nothing.
    close_on_empty_fetch: bool = True


class OpsConfig(BaseModel):
    model_config = {"extra": "forbid"}

    interval_seconds: int = Field(default=120, ge=1)
    db_path: str = "data/orderbook.db"


class TrackerConfig(BaseModel):
    model_config = {"extra": "forbid"}

    upstream: UpstreamConfig = UpstreamConfig()
    fetch: FetchConfig = FetchConfig()
    reconcile: ReconcileConfig = ReconcileConfig()
    ops: OpsConfig = OpsConfig()
