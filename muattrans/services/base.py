"""
Unit-of-work plumbing shared by the entity services.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from muattrans.errors import DuplicateConflict, InternalFailure, ServiceError

logger = logging.getLogger(__name__)


def _is_unique_violation(error: IntegrityError) -> bool:
    # sqlite: "UNIQUE constraint failed", postgres: "duplicate key value violates unique constraint"
    return "unique" in str(error.orig).lower()


class BaseService:
    """Entity services mutate state only inside ``transaction()``"""

    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """All-or-nothing scope: commit on success, roll back on any failure.

        Typed service failures propagate unchanged. A unique index rejecting
        the write (a concurrent request won the check-then-insert race) becomes
        DuplicateConflict; anything else is wrapped in InternalFailure with the
        original message kept for diagnostics.
        """
        try:
            yield self.db
            await self.db.commit()
        except ServiceError:
            await self.db.rollback()
            raise
        except IntegrityError as e:
            await self.db.rollback()
            if not _is_unique_violation(e):
                logger.exception(f"{type(self).__name__}: integrity error, rolled back")
                raise InternalFailure(str(e.orig)) from e
            logger.warning(f"{type(self).__name__}: unique constraint rejected write: {e.orig}")
            raise DuplicateConflict() from e
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"{type(self).__name__}: transaction rolled back")
            raise InternalFailure(str(e)) from e

    @asynccontextmanager
    async def guard(self) -> AsyncIterator[AsyncSession]:
        """Read-only scope with the same error translation, no commit"""
        try:
            yield self.db
        except ServiceError:
            raise
        except Exception as e:
            logger.exception(f"{type(self).__name__}: read failed")
            raise InternalFailure(str(e)) from e
