# engine/migrate.py — apply the Postgres schema: python -m matchfeed.engine.migrate [dsn]
import asyncio, logging, sys
import asyncpg

from .. import config
from .database import PG_SCHEMA

log = logging.getLogger("migrate")


async def main(dsn: str):
    conn = await asyncpg.connect(dsn=dsn, timeout=config.PG_TIMEOUT)
    try:
        for stmt in PG_SCHEMA.split(";"):
            s = stmt.strip()
            if s:
                await conn.execute(s)
        log.info("Schema applied.")
    finally:
        await conn.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    dsn = sys.argv[1] if len(sys.argv) > 1 else config.PG_DSN
    asyncio.run(main(dsn))
