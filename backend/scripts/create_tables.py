import sys, pathlib, asyncio
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from deliverytracker.core.db import engine
from deliverytracker.models import Base


async def main():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("tables:", ", ".join(sorted(Base.metadata.tables)))
    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(main())
