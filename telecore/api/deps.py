"""
FastAPI dependencies for database sessions and service construction.

Authentication is handled in front of this service; handlers receive
actor ids explicitly in request bodies.
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from telecore.core.locks import KeyLockManager, get_lock_manager
from telecore.database.connection import get_db

DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
LockManager = Annotated[KeyLockManager, Depends(get_lock_manager)]
