"""Shared FastAPI dependencies for the API routers."""
from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from mixroom.db import DataStore, get_db


async def get_store(db: AsyncSession = Depends(get_db)) -> DataStore:
    """Request-scoped ``DataStore``; the transaction is owned by ``get_db``."""
    return DataStore(db)
