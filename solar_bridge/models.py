"""Data models for Solar Analytics API responses and the local API."""

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from typing import Optional, List
from datetime import datetime, timezone


class Credentials(BaseModel):
    """Solar Analytics account credentials, fixed for the process lifetime."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: str
    site_id: str

    def __repr__(self):
        return f"Credentials(username={self.username}, site_id={self.site_id})"

    __str__ = __repr__


# =============================================================================
# Vendor Models
# =============================================================================

class Token(BaseModel):
    """Bearer token issued by the /v3/token endpoint."""

    model_config = ConfigDict(frozen=True)

    token: str
    expires: str = ""
    duration: int = 0
    # None when `expires` could not be parsed; such a token is never trusted
    expires_at: Optional[datetime] = None

    def is_valid(self, now: datetime) -> bool:
        """Check whether the token is still usable at `now`."""
        if self.expires_at is None:
            return False
        return now < self.expires_at

    def __repr__(self):
        return f"Token(expires={self.expires!r}, duration={self.duration})"

    __str__ = __repr__


class VendorModel(BaseModel):
    """Base for portal payloads: a JSON null reads as the field's default."""

    @field_validator("*", mode="before")
    @classmethod
    def _null_as_default(cls, value, info: ValidationInfo):
        if value is None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value


class LiveSample(VendorModel):
    """One entry of the live_site_data response."""

    generated: float = 0.0
    consumed: float = 0.0


class LiveData(VendorModel):
    """Response from /v3/live_site_data (last six readings)."""

    available: bool = False
    data: List[LiveSample] = Field(default_factory=list)


class SiteSample(VendorModel):
    """One per-minute bucket of the site_data response."""

    t_stamp: str = ""
    energy_expected: float = 0.0
    energy_generated: float = 0.0
    energy_consumed: float = 0.0
    load_hot_water: float = 0.0
    load_other: float = 0.0
    load_air_conditioner: float = 0.0
    load_stove: float = 0.0


class SiteData(VendorModel):
    """Response from /v2/site_data for a single day."""

    available: bool = False
    data: List[SiteSample] = Field(default_factory=list)


# =============================================================================
# Local API Models
# =============================================================================

class LiveSummary(BaseModel):
    """Most recent live reading as served on /live."""

    available: bool = False
    generated: float = 0.0
    consumed: float = 0.0

    @classmethod
    def unavailable(cls) -> "LiveSummary":
        return cls(available=False)


class DailySummary(BaseModel):
    """Today's aggregated energy totals as served on /site."""

    available: bool = False
    generated: float = 0.0
    consumed: float = 0.0
    imported: float = 0.0
    exported: float = 0.0
    hot_water: float = 0.0
    ac1: float = 0.0
    ac2: float = 0.0
    stove: float = 0.0
    timestamp: Optional[datetime] = None

    @classmethod
    def unavailable(cls, day_start: Optional[datetime] = None) -> "DailySummary":
        """Zeroed summary reported when the site fetch failed."""
        return cls(available=False, timestamp=day_start)


class SnapshotStatus(BaseModel):
    """Refresh bookkeeping kept alongside the snapshots."""

    live_available: bool = False
    site_available: bool = False
    last_live_refresh: Optional[datetime] = None
    last_site_refresh: Optional[datetime] = None


class HealthStatus(BaseModel):
    """API health status."""

    status: str = "healthy"
    refresh_mode: str = "on_demand"
    token_valid: bool = False
    token_expires_at: Optional[datetime] = None
    live_available: bool = False
    site_available: bool = False
    last_live_refresh: Optional[datetime] = None
    last_site_refresh: Optional[datetime] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = "1.0.0"
