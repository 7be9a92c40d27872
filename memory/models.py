from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from settings import GEO_CACHE_TTL_SECONDS


class GeolocationSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    country: str = ""
    country_code: str = Field(default="", alias="countryCode")
    region: str = ""
    city: str = ""
    timezone: str = ""
    source: str = ""
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    ttl_seconds: int = GEO_CACHE_TTL_SECONDS

    def expires_at(self) -> datetime:
        captured = self.captured_at
        if captured.tzinfo is None:
            captured = captured.replace(tzinfo=timezone.utc)
        return captured + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at()

    def is_usable(self) -> bool:
        return bool(self.country or self.country_code)
