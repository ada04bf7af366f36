from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.user_record import UserRecord
from ..schemas.user_record import UserRecordRead, UserRecordWrite

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when user records cannot be read or written."""


class UserRecordStore:
    """Per-user onboarding records.

    Every operation runs in its own short transaction, so no database lock is
    held while the bot talks to Telegram or the ledger. Operations on the same
    user are kept in order by the caller.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self, failure: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self.session_factory() as session, session.begin():
                yield session
        except SQLAlchemyError as exc:
            raise StoreError(failure) from exc

    async def get(self, user_id: int) -> Optional[UserRecordRead]:
        async with self._transaction(f"Could not load record for user {user_id}") as session:
            record = await session.get(UserRecord, user_id)
            if record is None:
                return None
            return UserRecordRead.model_validate(record)

    async def exists(self, user_id: int) -> bool:
        async with self._transaction(f"Could not look up user {user_id}") as session:
            result = await session.execute(
                select(UserRecord.user_id).where(UserRecord.user_id == user_id)
            )
            return result.scalar_one_or_none() is not None

    async def put(self, user_id: int, payload: UserRecordWrite) -> None:
        async with self._transaction(f"Could not save record for user {user_id}") as session:
            record = await session.get(UserRecord, user_id)
            if record is None:
                record = UserRecord(user_id=user_id)
                session.add(record)
            record.state = payload.state.value
            record.ledger_url = payload.ledger_url
            record.ledger_token = payload.ledger_token
        logger.debug("Stored record for user %s in state %s", user_id, payload.state.value)

    async def delete(self, user_id: int) -> None:
        async with self._transaction(f"Could not delete record for user {user_id}") as session:
            await session.execute(delete(UserRecord).where(UserRecord.user_id == user_id))
