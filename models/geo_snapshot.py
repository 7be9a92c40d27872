# models/geo_snapshot.py
from __future__ import annotations
from sqlalchemy import Column, DateTime, Integer, String

from core.database import Base


class GeoSnapshot(Base):
    __tablename__ = "geo_snapshots"

    # one row per browser profile
    profile_key = Column(String(64), primary_key=True)

    country = Column(String(128), nullable=False, default="")
    country_code = Column(String(8), nullable=False, default="")
    region = Column(String(128), nullable=False, default="")
    city = Column(String(128), nullable=False, default="")
    timezone = Column(String(64), nullable=False, default="")
    source = Column(String(32), nullable=False, default="")

    captured_at = Column(DateTime(timezone=True), nullable=False)
    ttl_seconds = Column(Integer, nullable=False)
