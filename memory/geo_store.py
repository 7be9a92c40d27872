# memory/geo_store.py
from __future__ import annotations

from datetime import timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine

from core.database import create_tables, engine as default_engine, make_sessionmaker
from memory.models import GeolocationSnapshot
from models.geo_snapshot import GeoSnapshot

DEFAULT_PROFILE_KEY = "default"


class GeoSnapshotStore:
    """Persisted geolocation snapshot, one row per browser profile."""

    def __init__(self, bind: Optional[AsyncEngine] = None, profile_key: str = DEFAULT_PROFILE_KEY):
        self._engine = bind or default_engine
        self._sessions = make_sessionmaker(self._engine)
        self.profile_key = profile_key
        self._ready = False

    async def _init(self) -> None:
        if not self._ready:
            await create_tables(self._engine)
            self._ready = True

    async def get(self) -> Optional[GeolocationSnapshot]:
        await self._init()
        async with self._sessions() as session:
            result = await session.execute(select(GeoSnapshot).where(GeoSnapshot.profile_key == self.profile_key))
            row = result.scalars().first()

        if not row:
            return None

        captured = row.captured_at
        if captured.tzinfo is None:
            # sqlite drops the offset; we always write UTC
            captured = captured.replace(tzinfo=timezone.utc)
        return GeolocationSnapshot(
            country=row.country,
            country_code=row.country_code,
            region=row.region,
            city=row.city,
            timezone=row.timezone,
            source=row.source,
            captured_at=captured,
            ttl_seconds=row.ttl_seconds,
        )

    async def put(self, snapshot: GeolocationSnapshot) -> None:
        await self._init()
        async with self._sessions() as session:
            row = await session.get(GeoSnapshot, self.profile_key)
            if row is None:
                row = GeoSnapshot(profile_key=self.profile_key)
                session.add(row)
            row.country = snapshot.country
            row.country_code = snapshot.country_code
            row.region = snapshot.region
            row.city = snapshot.city
            row.timezone = snapshot.timezone
            row.source = snapshot.source
            row.captured_at = snapshot.captured_at.astimezone(timezone.utc)
            row.ttl_seconds = snapshot.ttl_seconds
            await session.commit()

    async def clear(self) -> None:
        await self._init()
        async with self._sessions() as session:
            await session.execute(delete(GeoSnapshot).where(GeoSnapshot.profile_key == self.profile_key))
            await session.commit()
