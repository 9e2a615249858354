"""
Database module for Mixroom.

Provides async SQLAlchemy support with PostgreSQL and SQLite.
"""
from __future__ import annotations

from mixroom.db.database import (
    get_db,
    init_db,
    close_db,
)
from mixroom.db.models import (
    AudioVersion,
    MixReference,
    PortalApprovalEvent,
    PortalShare,
    PortalTrackSetting,
    PortalVersionSetting,
    Release,
    ReleaseMember,
    RevisionNote,
    Track,
    TrackDistribution,
)
from mixroom.db.store import NOT_NULL, DataStore

__all__ = [
    "get_db",
    "init_db",
    "close_db",
    "DataStore",
    "NOT_NULL",
    "AudioVersion",
    "MixReference",
    "PortalApprovalEvent",
    "PortalShare",
    "PortalTrackSetting",
    "PortalVersionSetting",
    "Release",
    "ReleaseMember",
    "RevisionNote",
    "Track",
    "TrackDistribution",
]
