"""
Postgres override backend

Table: public.hs_overrides (see infra/db/migrations/versions/001_hs_overrides.py)

Lookups compare on product_key = lower(product_name), computed in Python
so both backends agree on what "same name" means. Upsert is a single
INSERT ... ON CONFLICT statement, atomic per row: the first writer's
product_name is kept, the code is replaced, times_confirmed counts how
often users confirmed or corrected this name.
"""
from datetime import datetime, timezone
from typing import List

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from packages.common.database import DatabaseSessionManager
from packages.domain.classification.errors import PersistenceFailure
from packages.domain.classification.schemas import Override

logger = structlog.get_logger()


class PostgresOverrideBackend:
    """OverrideBackend on an async SQLAlchemy session manager"""

    def __init__(self, sessions: DatabaseSessionManager):
        self.sessions = sessions

    async def read_all(self) -> List[Override]:
        query = text("""
            SELECT product_name, correct_code
            FROM hs_overrides
            ORDER BY created_at, id
        """)

        try:
            async with self.sessions.session() as db:
                result = await db.execute(query)
                rows = result.fetchall()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Cannot read overrides: {e}") from e

        return [
            Override(product_name=row.product_name, correct_code=row.correct_code)
            for row in rows
        ]

    async def upsert(self, override: Override) -> Override:
        now = datetime.now(timezone.utc)

        query = text("""
            INSERT INTO hs_overrides (
                product_key,
                product_name,
                correct_code,
                times_confirmed,
                created_at,
                updated_at
            ) VALUES (
                :product_key,
                :product_name,
                :correct_code,
                1,
                :now,
                :now
            )
            ON CONFLICT (product_key) DO UPDATE
            SET
                correct_code = EXCLUDED.correct_code,
                times_confirmed = hs_overrides.times_confirmed + 1,
                updated_at = EXCLUDED.updated_at
            RETURNING product_name, correct_code, times_confirmed
        """)

        try:
            async with self.sessions.session() as db:
                result = await db.execute(query, {
                    "product_key": override.key,
                    "product_name": override.product_name,
                    "correct_code": override.correct_code,
                    "now": now,
                })
                row = result.fetchone()
        except SQLAlchemyError as e:
            raise PersistenceFailure(f"Cannot store override for {override.product_name!r}: {e}") from e

        logger.debug("override_row_upserted",
                     product=row.product_name,
                     code=row.correct_code,
                     times_confirmed=row.times_confirmed)

        return Override(product_name=row.product_name, correct_code=row.correct_code)
