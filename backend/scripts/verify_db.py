import sys, pathlib, asyncio
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from sqlalchemy import text
from deliverytracker.core.config import settings
from deliverytracker.core.db import SessionLocal

async def main():
    print("DB_HOST:", settings.DB_HOST)
    print("DB_SSL:", settings.DB_SSL)
    print("REMOTE_TIMEOUT_SEC:", settings.REMOTE_TIMEOUT_SEC)
    async with SessionLocal() as s:
        one = await s.execute(text("SELECT 1"))
        print("db-ping:", one.scalar())

        for table in ("deliveries", "customers"):
            count = await s.execute(text(f"SELECT count(*) FROM {table}"))
            print(f"{table}:", count.scalar())

if __name__ == "__main__":
    asyncio.run(main())
