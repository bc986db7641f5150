"""Repair onboarding data: collapse duplicate in-progress consultations, purge expired drafts."""

import asyncio
from datetime import timedelta

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import create_async_engine

from consultflow.core.config import get_settings
from consultflow.db.utils import utcnow


async def main() -> None:
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)

    async with engine.begin() as conn:
        # 1. Owners holding more than one in-progress consultation
        result = await conn.execute(
            text(
                "SELECT owner_id, COUNT(*) FROM consultations "
                "WHERE status = 'in_progress' GROUP BY owner_id HAVING COUNT(*) > 1"
            )
        )
        duplicates = result.fetchall()
        print(f"Found {len(duplicates)} owner(s) with duplicate in-progress consultations.")

        # 2. Keep the newest, abandon the rest
        for owner_id, count in duplicates:
            result = await conn.execute(
                text(
                    "SELECT id FROM consultations "
                    "WHERE owner_id = :owner_id AND status = 'in_progress' "
                    "ORDER BY updated_at DESC"
                ),
                {"owner_id": owner_id},
            )
            ids = [row[0] for row in result.fetchall()]
            await conn.execute(
                text(
                    "UPDATE consultations SET status = 'abandoned', updated_at = :now "
                    "WHERE id IN :ids"
                ).bindparams(bindparam("ids", expanding=True)),
                {"now": utcnow(), "ids": ids[1:]},
            )
            print(f"  {owner_id} | kept={ids[0]} | abandoned={count - 1}")

        # 3. Drafts past the recovery window are never offered again
        cutoff = utcnow() - timedelta(hours=settings.draft_ttl_hours)
        result = await conn.execute(
            text("DELETE FROM consultation_drafts WHERE updated_at < :cutoff RETURNING owner_id"),
            {"cutoff": cutoff},
        )
        print(f"Purged {len(result.fetchall())} expired draft(s).")

    await engine.dispose()
    print("\nALL DONE")


if __name__ == "__main__":
    asyncio.run(main())
